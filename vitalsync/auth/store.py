"""Small persisted key-value store for the session.

Holds the cached identity token, the optional refresh token and the
user's display name in a JSON file, so they survive process restarts.
Writes go through a temporary file and an atomic rename.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger("vitalsync.auth.store")


class StoredSession(BaseModel):
    """Persisted session fields.  Every field is optional."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identity_token: str | None = None
    refresh_token: str | None = None
    user_name: str | None = None
    updated_at: datetime | None = None


class StateStore:
    """JSON-file backed store for one StoredSession."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StoredSession:
        """Read the stored session.  A missing or corrupt file yields an empty one."""
        if not self._path.exists():
            return StoredSession()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return StoredSession.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable session state at %s: %s", self._path, exc)
            return StoredSession()

    def save(self, session: StoredSession) -> None:
        """Persist ``session``, stamping ``updated_at``."""
        session = session.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(session.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
        logger.debug("Saved session state to %s", self._path)

    def update(self, **fields: str | None) -> StoredSession:
        """Load, overwrite ``fields`` and save.  Returns the saved session."""
        session = self.load().model_copy(update=fields)
        self.save(session)
        return session

    def clear(self) -> None:
        """Forget the stored tokens, keeping the display name."""
        self.update(identity_token=None, refresh_token=None)
