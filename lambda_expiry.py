# lambda_expiry.py
"""
Scheduled (EventBridge) Lambda: move pending reports past their expiry to
`expired`. Re-running it is harmless; terminal reports are never touched.
"""
import logging
from datetime import datetime, timezone

from gosafe.db.backend import build_store
from gosafe.services.reports import ReportService
from gosafe.settings import Settings

log = logging.getLogger()
log.setLevel(logging.INFO)

_service = None


def _get_service() -> ReportService:
    # built once per warm container, not at import, so tests can patch the store
    global _service
    if _service is None:
        settings = Settings.from_env()
        _service = ReportService(build_store(settings), settings)
    return _service


def handler(event, context, service: ReportService = None):
    service = service or _get_service()

    # EventBridge scheduled events carry their fire time; fall back to now
    now = datetime.now(timezone.utc)
    fired_at = (event or {}).get("time")
    if fired_at:
        try:
            now = datetime.fromisoformat(fired_at.replace("Z", "+00:00"))
        except ValueError:
            log.warning("Unparseable event time %r, using now", fired_at)

    expired = service.expire_due_reports(now)
    return {"reports_expired": expired, "swept_at": now.isoformat()}
