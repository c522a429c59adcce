import json
import logging
import os

from flask import Flask, g, request
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from werkzeug.exceptions import HTTPException

# Inicializar SQLAlchemy y Bcrypt
db = SQLAlchemy()
bcrypt = Bcrypt()

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s]: %(message)s"
LOG_DATEFMT = "%d-%m-%Y %H:%M:%S"

# Campos que nunca se escriben en la bitácora
_CAMPOS_SENSIBLES = {"password", "confirmPassword", "token"}


def _configure_logging(app):
    logger = logging.getLogger(__name__)
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    if app.config.get("LOG_TO_FILE"):
        os.makedirs(app.config["LOG_DIR"], exist_ok=True)
        filename = os.path.join(app.config["LOG_DIR"], f"audit_{app.config['APP_ENV']}.log")
        file_handler = logging.FileHandler(filename, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def _audit_path():
    token = (request.view_args or {}).get("token")
    return request.path.replace(token, "***") if token else request.path


def _audit_details():
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        body = {k: ("***" if k in _CAMPOS_SENSIBLES else v) for k, v in body.items()}
    return json.dumps({
        "body": body,
        "params": {k: ("***" if k in _CAMPOS_SENSIBLES else v) for k, v in (request.view_args or {}).items()},
        "query": request.args.to_dict(),
    }, default=str, ensure_ascii=False)


def create_app(config_object=None):
    app = Flask(__name__)

    from bamx.config import Config
    app.config.from_object(config_object or Config)

    if not app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })

    _configure_logging(app)

    # Inicializar la base de datos con la app
    db.init_app(app)
    bcrypt.init_app(app)

    # Configuración CORS, con cookies de sesión
    CORS(app, resources={
        r"/*": {
            "origins": app.config["CORS_ORIGINS"],
            "supports_credentials": True,
            "allow_headers": ["Content-Type", "X-Requested-With", "Authorization"],
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"]
        }
    })

    # Importar modelos antes de usar la BD
    from bamx import models  # noqa: F401

    # Registrar rutas
    from bamx.routes import register_blueprints
    register_blueprints(app)

    @app.after_request
    def audit_request(response):
        if request.method != "OPTIONS":
            user = g.get("user")
            user_id = user["id"] if user else "anonymous"
            log.info(f"User ID: {user_id}, Action: {request.method} {_audit_path()}, "
                     f"Status: {response.status_code}, Details: {_audit_details()}")
        return response

    from bamx.responses import error_response

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return error_response(e.code, e.description)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        log.exception(f"Unhandled error on {request.method} {request.path}")
        return error_response(500, "Something went wrong!")

    return app
