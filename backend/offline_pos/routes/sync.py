# Overview: Flask API routes exposing sync status and controls to the UI.

from flask import Blueprint, current_app, request

from ..services.container import get_services

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _status_body() -> dict:
    engine = get_services().sync
    status = engine.get_sync_status()
    body = status.to_dict()
    body["status_text"] = engine.status_text()
    body["unsynced_text"] = engine.unsynced_text()
    body["remote_configured"] = engine.remote_configured
    return body


@sync_bp.get("/status")
def sync_status():
    return _status_body()


@sync_bp.post("/run")
def run_sync():
    """Run one cycle now. 409 when a cycle is already in flight."""
    result = get_services().sync.run_blocking()
    if not result.started:
        return result.to_dict(), 409
    if not result.success:
        current_app.logger.warning("Manual sync failed: %s", result.message)
    return result.to_dict()


@sync_bp.put("/settings")
def update_settings():
    data = request.get_json(silent=True) or {}
    auto_sync = data.get("autoSync")
    if not isinstance(auto_sync, bool):
        return {"error": "autoSync must be a boolean"}, 400
    get_services().sync.set_auto_sync(auto_sync)
    return _status_body()


@sync_bp.delete("/error")
def clear_error():
    get_services().sync.clear_sync_error()
    return _status_body()


@sync_bp.post("/connectivity")
def report_connectivity():
    """
    Reachability signal forwarded by the host shell.

    Body: {"online": bool}. Going online may start an automatic cycle.
    """
    data = request.get_json(silent=True) or {}
    online = data.get("online")
    if not isinstance(online, bool):
        return {"error": "online must be a boolean"}, 400
    changed = get_services().connectivity.update(online)
    body = _status_body()
    body["changed"] = changed
    return body
