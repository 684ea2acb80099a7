"""
Pulseboard Flask API — v1.0.0

Routes:
- POST   /api/auth                   verify the edit password
- GET    /api/priorities             tasks (labels only with a valid bearer)
- POST   /api/priorities             replace the task list          [auth]
- DELETE /api/priorities             delete a task by id            [auth]
- GET    /api/tags                   tag catalog
- POST   /api/tags                   add a tag                      [auth]
- DELETE /api/tags                   delete an unused tag           [auth]
- GET    /api/flowkeeper             flow tasks + live completions
- POST   /api/flowkeeper             replace the flow task list     [auth]
- DELETE /api/flowkeeper             delete a flow task by id       [auth]
- POST   /api/flowkeeper/complete    complete a flow task           [auth]
- GET    /api/usage                  cached usage totals (?fresh=1)
- GET    /api/cron/refresh-usage     scheduled refresh              [cron secret]
- GET    /api/health

Every error is a JSON envelope: {"ok": false, "error": "...", "message": "..."}
"""

import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

# -----------------------------------------------------------------------------
# Path Setup — Must happen BEFORE any other imports
# -----------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent

if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from backend.usage_service import UsageService
from core.errors import NotConfigured, PulseError, ValidationError
from core.records import FlowTask, Task
from storage.kv_factory import get_kv_store
from storage.kv_store import KVConfig
from storage.repository import PulseRepository
from system.auth import is_authorized, require_cron, require_editor, verify_password
from system.config import Config


logger = logging.getLogger("pulse.api")

app = Flask(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# SERVICES
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Services:
    config: Config
    repository: PulseRepository
    usage: UsageService


_services: Optional[Services] = None


def configure(
    config: Config,
    repository: Optional[PulseRepository] = None,
    usage: Optional[UsageService] = None,
) -> Services:
    """Wire the app to its stores. Tests pass their own repository/usage."""
    global _services

    if repository is None or usage is None:
        kv_config = KVConfig.from_env()
        kv_config.data_dir = config.data_dir
        if config.is_production and not os.getenv("KV_PROVIDER"):
            kv_config.provider = "upstash"
        kv = get_kv_store(kv_config)
        repository = repository or PulseRepository(kv)
        usage = usage or UsageService(
            kv,
            api_key=config.cursor_api_key,
            refresh_seconds=config.usage_refresh_seconds,
        )

    _services = Services(config=config, repository=repository, usage=usage)
    return _services


def get_services() -> Services:
    if _services is None:
        return configure(Config.load())
    return _services


def reset_services() -> None:
    """Reset the singleton (for testing)."""
    global _services
    _services = None


def _auth_header() -> Optional[str]:
    return request.headers.get("Authorization")


def _require_editor() -> Services:
    services = get_services()
    require_editor(_auth_header(), services.config.edit_password)
    return services


def _json_body(expected: type = dict) -> Any:
    data = request.get_json(silent=True)
    if not isinstance(data, expected):
        raise ValidationError("Invalid request")
    return data


def _parse_items(data: list, parse: Callable[[Any], Any]) -> list:
    return [parse(entry) for entry in data]


def _ok(**extra):
    return jsonify({"ok": True, **extra})


# ─────────────────────────────────────────────────────────────────────────────
# GLOBAL ERROR HANDLERS — Ensure JSON responses, never HTML
# ─────────────────────────────────────────────────────────────────────────────

@app.errorhandler(PulseError)
def handle_pulse_error(e: PulseError):
    if e.status >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.path, e.code, e.message)
    return jsonify(e.to_dict()), e.status


@app.errorhandler(404)
def handle_404(e):
    return jsonify({
        "ok": False,
        "error": "not_found",
        "message": f"Endpoint not found: {request.path}",
    }), 404


@app.errorhandler(405)
def handle_405(e):
    return jsonify({
        "ok": False,
        "error": "method_not_allowed",
        "message": f"{request.method} not allowed on {request.path}",
    }), 405


@app.errorhandler(Exception)
def handle_exception(e):
    """Anything unexpected still answers with the JSON envelope."""
    if isinstance(e, HTTPException):
        return jsonify({
            "ok": False,
            "error": (e.name or "http_error").lower().replace(" ", "_"),
            "message": e.description,
        }), e.code

    logger.error("Unhandled exception: %s: %s", type(e).__name__, e)
    traceback.print_exc()
    return jsonify({
        "ok": False,
        "error": "server_error",
        "message": "Internal server error",
    }), 500


# ─────────────────────────────────────────────────────────────────────────────
# AUTH
# ─────────────────────────────────────────────────────────────────────────────

@app.post("/api/auth")
def api_auth():
    data = _json_body()
    verify_password(data.get("password"), get_services().config.edit_password)
    return _ok()


# ─────────────────────────────────────────────────────────────────────────────
# PRIORITIES
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/api/priorities")
def api_priorities_get():
    """Labels are private: they only ship to callers with the edit bearer."""
    services = get_services()
    authorized = is_authorized(_auth_header(), services.config.edit_password)
    tasks = services.repository.load_tasks(authorized=authorized)
    return jsonify([t.to_dict(include_label=authorized) for t in tasks])


@app.post("/api/priorities")
def api_priorities_save():
    services = _require_editor()
    tasks = _parse_items(_json_body(list), Task.from_dict)
    services.repository.save_tasks(tasks)
    return _ok(count=len(tasks))


@app.delete("/api/priorities")
def api_priorities_delete():
    services = _require_editor()
    task_id = _json_body().get("id")
    if not task_id:
        raise ValidationError("id is required")
    services.repository.delete_task(task_id)
    return _ok()


# ─────────────────────────────────────────────────────────────────────────────
# TAGS
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/api/tags")
def api_tags_get():
    tags = get_services().repository.load_tags()
    return jsonify([t.to_dict() for t in tags])


@app.post("/api/tags")
def api_tags_add():
    services = _require_editor()
    data = _json_body()
    tags = services.repository.add_tag(data.get("value"), data.get("label"))
    return _ok(tags=[t.to_dict() for t in tags])


@app.delete("/api/tags")
def api_tags_delete():
    services = _require_editor()
    value = _json_body().get("value")
    if not value:
        raise ValidationError("value is required")
    tags = services.repository.delete_tag(value)
    return _ok(tags=[t.to_dict() for t in tags])


# ─────────────────────────────────────────────────────────────────────────────
# FLOWKEEPER
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/api/flowkeeper")
def api_flowkeeper_get():
    tasks, completions = get_services().repository.load_flow()
    return jsonify({
        "tasks": [t.to_dict() for t in tasks],
        "completions": [c.to_dict() for c in completions],
    })


@app.post("/api/flowkeeper")
def api_flowkeeper_save():
    services = _require_editor()
    tasks = _parse_items(_json_body(list), FlowTask.from_dict)
    services.repository.save_flow_tasks(tasks)
    return _ok(count=len(tasks))


@app.delete("/api/flowkeeper")
def api_flowkeeper_delete():
    services = _require_editor()
    task_id = _json_body().get("id")
    if not task_id:
        raise ValidationError("id is required")
    services.repository.delete_flow_task(task_id)
    return _ok()


@app.post("/api/flowkeeper/complete")
def api_flowkeeper_complete():
    services = _require_editor()
    task_id = _json_body().get("id")
    if not task_id:
        raise ValidationError("id is required")
    completion = services.repository.complete_flow_task(task_id)
    return _ok(completion=completion.to_dict())


# ─────────────────────────────────────────────────────────────────────────────
# USAGE
# ─────────────────────────────────────────────────────────────────────────────

@app.get("/api/usage")
def api_usage():
    fresh = request.args.get("fresh", "").lower() in ("1", "true", "yes")
    totals = get_services().usage.poll_usage_totals(fresh=fresh)
    return jsonify(totals.to_dict())


@app.get("/api/cron/refresh-usage")
def api_cron_refresh_usage():
    services = get_services()
    config = services.config
    require_cron(_auth_header(), config.cron_secret, config.is_production)
    if not config.cursor_api_key:
        raise NotConfigured("No CURSOR_API_KEY")
    totals = services.usage.refresh()
    return _ok(success=True, **totals.to_dict())


@app.get("/api/health")
def api_health():
    config = get_services().config
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "env": config.env,
        "editing_enabled": bool(config.edit_password),
        "metering_configured": bool(config.cursor_api_key),
    })


# ─────────────────────────────────────────────────────────────────────────────
# MAIN
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    config = Config.load()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    configure(config)
    print("[PulseAPI] Starting server...", flush=True)
    print(f"[PulseAPI] Base directory: {BASE_DIR}", flush=True)
    print(f"[PulseAPI] Environment: {config.env}", flush=True)
    if not config.edit_password:
        print("[PulseAPI] EDIT_PASSWORD not set; editing disabled", flush=True)

    app.run(host="0.0.0.0", port=5000, debug=config.debug)
