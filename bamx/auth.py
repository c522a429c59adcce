import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import current_app, g, request

from bamx.models import ROL_DIRECCION
from bamx.responses import error_response

log = logging.getLogger(__name__)

COOKIE_NAME = "jwt"


def create_token(usuario):
    payload = {
        "id": usuario.id,
        "rol": usuario.rol,
        "exp": datetime.now(timezone.utc) + timedelta(hours=current_app.config["JWT_EXPIRES_HOURS"]),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm="HS256")


def set_token_cookie(response, token):
    response.set_cookie(
        COOKIE_NAME,
        token,
        httponly=True,
        secure=current_app.config["JWT_COOKIE_SECURE"],
        samesite="Strict",
        path="/",
    )
    return response


def clear_token_cookie(response):
    response.delete_cookie(
        COOKIE_NAME,
        httponly=True,
        secure=current_app.config["JWT_COOKIE_SECURE"],
        samesite="Strict",
        path="/",
    )
    return response


def _read_token():
    """Regresa (token, error). La cookie tiene prioridad sobre los encabezados."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token, None

    auth_header = request.headers.get("token") or request.headers.get("Authorization")
    if not auth_header:
        return None, (401, "No token provided")
    if not auth_header.startswith("Bearer "):
        return None, (401, "Invalid token format")
    return auth_header.split(" ", 1)[1], None


def _authenticate():
    token, error = _read_token()
    if error:
        return error_response(*error)
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        log.warning(f"Token verification failed: {e}")
        return error_response(403, "Failed to authenticate token")

    g.user = {"id": payload.get("id"), "rol": payload.get("rol")}
    return None


def is_admin():
    return g.user["rol"] == ROL_DIRECCION


def has_role(*roles):
    return g.user["rol"] in roles


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        failure = _authenticate()
        if failure:
            return failure
        return f(*args, **kwargs)
    return decorated


def roles_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            failure = _authenticate()
            if failure:
                return failure
            if g.user["rol"] not in roles:
                return error_response(403, "You are not authorized to perform this action")
            return f(*args, **kwargs)
        return decorated
    return decorator


admin_required = roles_required(ROL_DIRECCION)


def self_or_admin(f):
    """El id de la ruta debe ser el del usuario autenticado, salvo Dirección."""
    @wraps(f)
    def decorated(*args, **kwargs):
        failure = _authenticate()
        if failure:
            return failure
        if str(g.user["id"]) != str(kwargs.get("id")) and not is_admin():
            return error_response(403, "You are not authorized to perform this action")
        return f(*args, **kwargs)
    return decorated
