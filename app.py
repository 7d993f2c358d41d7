import os
import logging
from datetime import timedelta
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from sqlalchemy.orm import DeclarativeBase
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)
jwt = JWTManager()


def _error_response(status_code, code, message):
    return jsonify({'success': False, 'error': code, 'message': message}), status_code


# Token verification failures use the same JSON shape as service errors
@jwt.unauthorized_loader
def missing_token(reason):
    return _error_response(401, 'UNAUTHORIZED', reason)

@jwt.invalid_token_loader
def invalid_token(reason):
    return _error_response(422, 'INVALID_TOKEN', reason)

@jwt.expired_token_loader
def expired_token(jwt_header, jwt_payload):
    return _error_response(401, 'TOKEN_EXPIRED', 'Token has expired')


def _database_config():
    """Resolve the database URL and engine options from DATABASE_URL"""
    from utils.config_validator import DEFAULT_DATABASE_URL

    database_url = os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL

    if database_url.startswith(("postgresql://", "postgres://")):
        # Ensure psycopg2 driver is specified
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        return database_url, {
            "pool_size": 10,
            "pool_recycle": 280,  # Slightly less than 5 minutes to prevent stale connections
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "transport_payroll"
            }
        }

    # Fallback to SQLite for local development
    return database_url, {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    app.secret_key = os.environ.get("SESSION_SECRET")

    # x_for=1: Trust one proxy for X-Forwarded-For header (client IP)
    # x_proto=1: Trust one proxy for X-Forwarded-Proto header (HTTPS detection)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    database_url, engine_options = _database_config()
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # File upload configuration
    max_upload_mb = int(os.environ.get("MAX_UPLOAD_MB", "5"))
    app.config["UPLOAD_FOLDER"] = os.environ.get("UPLOAD_FOLDER", "uploads")
    app.config["MAX_UPLOAD_MB"] = max_upload_mb
    # Request body limit leaves room for multipart overhead; per-file size is checked by FileService
    app.config["MAX_CONTENT_LENGTH"] = (max_upload_mb + 1) * 1024 * 1024

    # JWT verification only; tokens are issued elsewhere
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY') or app.secret_key
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=1)
    app.config['JWT_ALGORITHM'] = 'HS256'

    # Overrides must land before db.init_app, which builds the engine
    if config_overrides:
        app.config.update(config_overrides)
        if not app.config.get('JWT_SECRET_KEY'):
            app.config['JWT_SECRET_KEY'] = app.config.get('SECRET_KEY')

    # Enforce SESSION_SECRET requirement
    if not app.config.get('SECRET_KEY'):
        raise RuntimeError("SESSION_SECRET environment variable is required but not set")

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    if not app.config.get('TESTING'):
        setup_logging(app)

    # CORS Configuration for production (restricted origins for security)
    production_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in production_origins if origin.strip()]

    # Fallback to localhost for development only if no production origins set
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
         expose_headers=["X-Request-ID"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    # Initialize extensions
    db.init_app(app)
    jwt.init_app(app)

    app.before_request(log_request_start)
    app.after_request(log_request_end)

    from services.errors import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        code = (error.name or 'HTTP_ERROR').upper().replace(' ', '_')
        return _error_response(error.code, code, error.description)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        logger.exception(f"Unhandled error: {str(error)}")
        return _error_response(500, 'INTERNAL_ERROR', 'An unexpected error occurred')

    # Register blueprints
    from trips_api import trips_api_bp
    from salary_api import salary_api_bp

    app.register_blueprint(trips_api_bp, url_prefix='/api/v1/trips')
    app.register_blueprint(salary_api_bp, url_prefix='/api/v1/salary')

    # Health check endpoint for deployment
    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        from timezone_utils import get_local_time_naive
        return {'status': 'ok', 'timestamp': get_local_time_naive().isoformat()}, 200

    # Create tables
    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    if not app.config.get('TESTING'):
        from utils.config_validator import check_production_readiness
        readiness = check_production_readiness()
        logger.info(f"Configuration: production_ready={readiness['production_ready']}, "
                    f"issues={len(readiness['issues'])}")

    return app
