"""VitalSync health snapshot agent.

Collects the day's health metrics from a device-local health data store,
renders them into one JSON document per user per day, and uploads that
document to object storage behind a signed-identity gate.

Subpackages:
    health/   — Metric sources, aggregation, sleep accumulation, formatting
    auth/     — Identity token, auth gate, storage credentials, local state
    services/ — Object storage upload client, host notifications
    sync/     — Cycle pipeline and trigger scheduler
    routers/  — Host control API
"""

__version__ = "0.1.0"
