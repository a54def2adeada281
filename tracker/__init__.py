from flask import Flask, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

from tracker.errors import ProductionError
from tracker.logging_config import configure_logging, get_logger
from tracker.models import db

logger = get_logger(__name__)

# Push channel for operator terminals; see tracker.production.relay
socketio = SocketIO()


def _cors_origins(app):
    """'*' or the comma-separated CORS_ORIGINS list."""
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins == "*":
        return origins
    return [origin.strip() for origin in origins.split(",") if origin.strip()]


def create_app(config_class=None):
    # Config module loads .env on import
    from tracker.config import get_config
    from tracker.db_config import configure_database
    from tracker.production import production_bp
    from tracker.production.relay import init_relay

    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(
        log_level=app.config.get("LOG_LEVEL", "INFO"),
        log_file=app.config.get("LOG_FILE"),
    )
    configure_database(app)

    logger.info(
        "Starting production tracker",
        environment=config_class.ENV,
        database=app.config["SQLALCHEMY_DATABASE_URI"].split("@")[-1][:50],
        implicit_step_creation=app.config.get("ALLOW_IMPLICIT_STEP_CREATION"),
    )

    origins = _cors_origins(app)
    CORS(app,
         resources={r"/api/*": {"origins": origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-User-Role"],
         methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"])

    db.init_app(app)

    socketio.init_app(app, cors_allowed_origins=origins)
    init_relay(app, socketio)

    app.register_blueprint(production_bp, url_prefix="/api")

    @app.errorhandler(Exception)
    def handle_exception(e):
        """JSON body for anything the blueprint handlers did not catch."""
        if isinstance(e, ProductionError):
            return jsonify(e.to_dict()), e.status_code
        if isinstance(e, HTTPException):
            return jsonify({"success": False, "error": e.name, "details": e.description}), e.code

        logger.error("Unhandled exception", error=str(e), exc_info=True)
        return jsonify({
            "success": False,
            "error": "Internal server error",
            "details": str(e),
        }), 500

    return app
