"""Load and validate the metric catalog.

The catalog lives in ``metric_catalog.yaml`` alongside this module.  It maps
each snapshot slot to its health-store identifier, unit, query style and the
fixed field names / placeholder messages used in the uploaded document.

Usage::

    from vitalsync.health.catalog import get_metric_catalog

    catalog = get_metric_catalog()
    spec = catalog.spec(MetricKind.HEART_RATE)
    spec.value_key        # "Heart Rate (bpm)"
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vitalsync.health.base import MetricKind

logger = logging.getLogger("vitalsync.health.catalog")

# Path to the YAML file sitting next to this module
_CATALOG_PATH = Path(__file__).parent / "metric_catalog.yaml"

QUERY_TYPES = ("cumulative", "category", "workout", "series", "latest")

# Query types whose rendered form needs a per-sample value key
_VALUE_KEY_QUERIES = ("series", "latest")


# ---------------------------------------------------------------------------
# Typed catalog sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricSpec:
    """How one metric is read and rendered.

    Attributes:
        kind:           Snapshot slot.
        identifier:     Health-store type identifier.
        query:          One of QUERY_TYPES.
        document_field: Top-level key in the uploaded document.
        unit:           Unit string passed to the store.
        scale:          Multiplier applied to each value after reading.
        ascending:      Sort samples oldest-first (default newest-first).
        value_key:      Per-record key carrying the value.
        placeholder:    Message rendered when the slot holds no data.
    """

    kind: MetricKind
    identifier: str
    query: str
    document_field: str
    unit: str = ""
    scale: float = 1.0
    ascending: bool = False
    value_key: str = ""
    placeholder: str = ""


@dataclass
class MetricCatalog:
    """Complete, validated metric catalog.

    Attributes:
        version:       Catalog schema version string.
        metrics:       MetricKind → MetricSpec, in document order.
        sleep_stages:  Sleep category value → stage label, in render order.
        workout_types: Workout activity type → display name.
    """

    version: str
    metrics: dict[MetricKind, MetricSpec]
    sleep_stages: dict[str, str]
    workout_types: dict[str, str]
    _raw: dict = field(default_factory=dict, repr=False)

    def spec(self, kind: MetricKind) -> MetricSpec:
        return self.metrics[kind]

    @property
    def stage_labels(self) -> tuple[str, ...]:
        return tuple(self.sleep_stages.values())

    def identifiers(self) -> list[str]:
        """All store identifiers, for the read-authorization request."""
        return [spec.identifier for spec in self.metrics.values()]

    def workout_name(self, activity_type: str) -> str:
        return self.workout_types.get(activity_type, "Other")


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when metric_catalog.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Metric catalog not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> MetricCatalog:
    """Validate the raw YAML dict and construct a MetricCatalog.

    Every MetricKind must be present exactly once; slots that render
    per-sample values need a ``value_key`` and everything except steps
    needs a ``placeholder``.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    def _require(d: dict, key: str, section: str) -> Any:
        if key not in d:
            errors.append(f"Missing required key '{key}' in section '{section}'")
            return None
        return d[key]

    version = str(raw.get("version", "1.0"))

    # ── Metrics ──
    metrics_raw = raw.get("metrics") or {}
    if not isinstance(metrics_raw, dict):
        errors.append("'metrics' must be a mapping of metric → settings")
        metrics_raw = {}

    unknown = sorted(set(metrics_raw) - {k.value for k in MetricKind})
    for name in unknown:
        errors.append(f"metrics.{name} is not a known metric")

    metrics: dict[MetricKind, MetricSpec] = {}
    for kind in MetricKind:
        section = f"metrics.{kind.value}"
        entry = metrics_raw.get(kind.value)
        if entry is None:
            errors.append(f"'{section}' is missing")
            continue
        if not isinstance(entry, dict):
            errors.append(f"'{section}' must be a mapping")
            continue

        identifier = _require(entry, "identifier", section)
        query = _require(entry, "query", section)
        document_field = _require(entry, "document_field", section)
        if query is not None and query not in QUERY_TYPES:
            errors.append(f"{section}.query = {query!r} is not one of {QUERY_TYPES}")
        if query in _VALUE_KEY_QUERIES and not entry.get("value_key"):
            errors.append(f"{section}.value_key is required for '{query}' metrics")
        if kind is not MetricKind.STEPS and not entry.get("placeholder"):
            errors.append(f"{section}.placeholder is required")

        try:
            scale = float(entry.get("scale", 1.0))
        except (TypeError, ValueError):
            errors.append(f"{section}.scale must be a number, got {entry.get('scale')!r}")
            scale = 1.0

        if identifier is None or query is None or document_field is None:
            continue
        metrics[kind] = MetricSpec(
            kind=kind,
            identifier=str(identifier),
            query=str(query),
            document_field=str(document_field),
            unit=str(entry.get("unit", "")),
            scale=scale,
            ascending=bool(entry.get("ascending", False)),
            value_key=str(entry.get("value_key", "")),
            placeholder=str(entry.get("placeholder", "")),
        )

    # ── Sleep stages ──
    stages_raw = raw.get("sleep_stages") or {}
    if not isinstance(stages_raw, dict) or not stages_raw:
        errors.append("'sleep_stages' section is missing or empty")
        stages_raw = {}
    sleep_stages = {str(k): str(v) for k, v in stages_raw.items()}
    if len(set(sleep_stages.values())) != len(sleep_stages):
        errors.append("sleep_stages labels must be unique")

    # ── Workout types ──
    workouts_raw = raw.get("workout_types") or {}
    if not isinstance(workouts_raw, dict):
        errors.append("'workout_types' must be a mapping")
        workouts_raw = {}
    workout_types = {str(k): str(v) for k, v in workouts_raw.items()}

    if errors:
        raise ConfigValidationError(
            f"metric_catalog.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return MetricCatalog(
        version=version,
        metrics=metrics,
        sleep_stages=sleep_stages,
        workout_types=workout_types,
        _raw=raw,
    )


def load_metric_catalog(path: Path | None = None) -> MetricCatalog:
    """Load and validate the metric catalog from disk.

    Args:
        path: Override path to YAML. Uses the bundled metric_catalog.yaml by default.
    """
    target = path or _CATALOG_PATH
    raw = _load_yaml(target)
    catalog = _validate_and_build(raw)
    logger.info("Loaded metric catalog v%s from %s", catalog.version, target)
    return catalog


# ---------------------------------------------------------------------------
# Process-wide cached instance
# ---------------------------------------------------------------------------

_catalog: MetricCatalog | None = None
_catalog_lock = threading.Lock()


def get_metric_catalog() -> MetricCatalog:
    """Return the bundled MetricCatalog, loading it on first call.  Thread-safe."""
    global _catalog
    if _catalog is None:
        with _catalog_lock:
            if _catalog is None:  # double-checked locking
                _catalog = load_metric_catalog()
    return _catalog
