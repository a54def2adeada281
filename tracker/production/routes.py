"""
Route handlers for the production Blueprint.

Handlers only marshal JSON into commands and map the error taxonomy onto HTTP
status codes; all progression rules live in the commands and the engine.
"""
from flask import current_app, jsonify, request
from sqlalchemy import text

from tracker.datetime_utils import format_timestamp, utcnow
from tracker.errors import ProductionError
from tracker.logging_config import get_logger
from tracker.models import db
from tracker.production import production_bp
from tracker.production.features.create_job.command import CreateJobCommand
from tracker.production.features.job_hold.command import HoldJobCommand, ResumeJobCommand
from tracker.production.features.payloads import HoldJobRequest, pick
from tracker.production.features.update_step.command import UpdateStepCommand
from tracker.production.relay import get_subscribers
from tracker.production.services.job_query_service import JobQueryService
from tracker.production.services.system_update_service import SystemUpdateService
from tracker.production.store import ProductionStore

logger = get_logger(__name__)

# ==============================================================================
# Helper Functions
# ==============================================================================

def _store():
    """Store bound to the request-scoped session."""
    return ProductionStore(db.session)


def _system_updates(store):
    return SystemUpdateService(
        store,
        subscribers=get_subscribers(),
        default_limit=current_app.config.get("EVENT_LOG_DEFAULT_LIMIT", 100),
        max_limit=current_app.config.get("EVENT_LOG_MAX_LIMIT", 500),
    )


def _error_response(exc: ProductionError, action: str):
    if exc.status_code >= 500:
        logger.error(action, error_type=type(exc).__name__, error=exc.message)
    else:
        logger.warning(action, error_type=type(exc).__name__, error=exc.message)
    return jsonify(exc.to_dict()), exc.status_code


def _unexpected(exc: Exception, action: str):
    logger.error(action, error=str(exc), exc_info=True)
    db.session.rollback()
    return jsonify({
        "success": False,
        "error": action,
        "details": str(exc),
    }), 500

# ==============================================================================
# Routes
# ==============================================================================

@production_bp.route("/ping")
def ping():
    """Liveness probe that also checks the database connection."""
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as exc:
        logger.error("Database ping failed", error=str(exc))
        db.session.rollback()
        database = "unavailable"
    status_code = 200 if database == "ok" else 503
    return jsonify({
        "success": database == "ok",
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": format_timestamp(utcnow()),
    }), status_code


@production_bp.route("/jobs", methods=["GET"])
def list_jobs():
    """Return all jobs, newest first, with progress counts."""
    try:
        jobs = JobQueryService(_store()).list_jobs()
        return jsonify({"success": True, "data": jobs, "total_count": len(jobs)}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to retrieve jobs")
    except Exception as exc:
        return _unexpected(exc, "Failed to retrieve jobs")


@production_bp.route("/jobs", methods=["POST"])
def create_job():
    """Create a job together with its default production steps."""
    try:
        payload = request.get_json(silent=True) or {}
        store = _store()
        result = CreateJobCommand.from_payload(payload).execute(store, _system_updates(store))
        return jsonify({"success": True, "data": result.to_dict()}), 201
    except ProductionError as exc:
        return _error_response(exc, "Failed to create job")
    except Exception as exc:
        return _unexpected(exc, "Failed to create job")


@production_bp.route("/jobs/<job_id>", methods=["GET"])
def get_job(job_id):
    try:
        job = JobQueryService(_store()).get_job(job_id)
        return jsonify({"success": True, "data": job}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to retrieve job")
    except Exception as exc:
        return _unexpected(exc, "Failed to retrieve job")


@production_bp.route("/jobs/<job_id>/steps", methods=["GET"])
def get_job_steps(job_id):
    """Return the production steps of a job ordered by step number."""
    try:
        steps = JobQueryService(_store()).list_steps(job_id)
        return jsonify({"success": True, "data": steps}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to retrieve job steps")
    except Exception as exc:
        return _unexpected(exc, "Failed to retrieve job steps")


@production_bp.route("/steps", methods=["PUT", "PATCH"])
def update_step():
    """
    Update one production step.

    Body: {stepId} or {jobId, stepNumber}, plus status, completedBy and optional data.
    """
    try:
        payload = request.get_json(silent=True) or {}
        command = UpdateStepCommand.from_payload(
            payload,
            allow_implicit_create=current_app.config.get("ALLOW_IMPLICIT_STEP_CREATION", False),
        )
        store = _store()
        result = command.execute(store, _system_updates(store))
        return jsonify({"success": True, "data": result.to_dict()}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to update production step")
    except Exception as exc:
        return _unexpected(exc, "Failed to update production step")


@production_bp.route("/jobs/<job_id>/hold", methods=["POST"])
def hold_job(job_id):
    try:
        payload: HoldJobRequest = request.get_json(silent=True) or {}
        command = HoldJobCommand(
            job_id=job_id,
            reason=pick(payload, "reason", "holdReason", "hold_reason"),
            held_by=pick(payload, "heldBy", "held_by"),
        )
        store = _store()
        job = command.execute(store, _system_updates(store))
        return jsonify({"success": True, "data": job}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to put job on hold")
    except Exception as exc:
        return _unexpected(exc, "Failed to put job on hold")


@production_bp.route("/jobs/<job_id>/resume", methods=["POST"])
def resume_job(job_id):
    try:
        payload = request.get_json(silent=True) or {}
        command = ResumeJobCommand(job_id=job_id, resumed_by=pick(payload, "resumedBy", "resumed_by"))
        store = _store()
        job = command.execute(store, _system_updates(store))
        return jsonify({"success": True, "data": job}), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to resume job")
    except Exception as exc:
        return _unexpected(exc, "Failed to resume job")


@production_bp.route("/updates", methods=["GET"])
def get_updates():
    """
    Return system updates created after `since`, newest first.

    Query parameters:
        since (str): ISO-8601 timestamp (defaults to UPDATES_DEFAULT_LOOKBACK_HOURS ago)
        limit (int): max records (defaults to EVENT_LOG_DEFAULT_LIMIT)
    """
    try:
        since = request.args.get("since") or SystemUpdateService.default_since(
            current_app.config.get("UPDATES_DEFAULT_LOOKBACK_HOURS", 24)
        )
        service = _system_updates(_store())
        updates = service.list_since(since, request.args.get("limit"))
        return jsonify({
            "success": True,
            "data": updates,
            "since": since if isinstance(since, str) else format_timestamp(since),
        }), 200
    except ProductionError as exc:
        return _error_response(exc, "Failed to retrieve updates")
    except Exception as exc:
        return _unexpected(exc, "Failed to retrieve updates")
