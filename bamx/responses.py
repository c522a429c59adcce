"""Sobre de respuesta común a toda la API.

Éxito::

    {"status": "success", "data": ..., "meta": {"request_time": ...}}

Error::

    {"status": "error", "error": {"code": 404, "message": ...}, "meta": {...}}
"""
from datetime import datetime

from flask import jsonify


def _meta():
    return {"request_time": datetime.now().strftime("%d/%m/%Y, %H:%M:%S")}


def success_response(status_code, data=None):
    if status_code == 204:
        return "", 204
    return jsonify({"status": "success", "data": data, "meta": _meta()}), status_code


def error_response(status_code, message):
    return jsonify({
        "status": "error",
        "error": {"code": status_code, "message": message},
        "meta": _meta(),
    }), status_code


def parse_id(value):
    """Regresa el id como entero o None si no es numérico."""
    value = str(value).strip()
    if not value.isdigit():
        return None
    return int(value)


def split_param(value):
    """'a,b , c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]
