from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from sqlalchemy.exc import SQLAlchemyError

from groupledger.config import Config
from groupledger.core import HttpMemberDirectory, SqlMemberDirectory, build_services
from groupledger.extensions import init_db
from groupledger.utils.errors import InfrastructureError, LedgerError
from groupledger.utils.logging import configure_logging, get_logger

jwt = JWTManager()
logger = get_logger(__name__)


def create_app(config_class=Config, database=None, directory=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Disable strict slashes to prevent 308 redirects that break CORS preflight
    app.url_map.strict_slashes = False

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_JSON", True))

    # Allow the mobile client to talk to Flask
    CORS(
        app,
        supports_credentials=True,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", [])}},
    )
    jwt.init_app(app)

    database = database or init_db(app)
    if directory is None:
        if app.config.get("MEMBER_DIRECTORY_URL"):
            directory = HttpMemberDirectory(
                app.config["MEMBER_DIRECTORY_URL"],
                timeout=app.config.get("MEMBER_DIRECTORY_TIMEOUT", 10),
            )
        else:
            directory = SqlMemberDirectory(database)
    app.extensions["group_ledger"] = build_services(database, directory)

    register_error_handlers(app)

    # Register API blueprints
    from groupledger.groups.routes import groups_bp
    from groupledger.settlements.routes import settlements_bp
    from groupledger.expenses.routes import expenses_bp
    from groupledger.users.routes import users_bp

    app.register_blueprint(groups_bp, url_prefix='/api/v1/group')
    app.register_blueprint(settlements_bp, url_prefix='/api/v1/group')
    app.register_blueprint(expenses_bp, url_prefix='/api/v1/groupExpense')
    app.register_blueprint(users_bp, url_prefix='/api/v1/users')

    return app


def register_error_handlers(app):

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        if isinstance(error, InfrastructureError):
            logger.error(
                "request_failed",
                method=request.method,
                path=request.path,
                group_id=(request.view_args or {}).get("group_id"),
            )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        logger.exception(
            "database_error",
            method=request.method,
            path=request.path,
            group_id=(request.view_args or {}).get("group_id"),
        )
        return jsonify(InfrastructureError().to_dict()), 500
