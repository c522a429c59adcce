import logging

from flask import Blueprint, request

from bamx import db
from bamx.auth import roles_required, token_required
from bamx.models import ROLES_LIDERAZGO, Ruta
from bamx.responses import error_response, parse_id, success_response

log = logging.getLogger(__name__)

api = Blueprint('rutas', __name__)


def _nombre(data):
    nombre = data.get('nombre')
    if not isinstance(nombre, str) or not nombre.strip():
        return None
    return nombre.strip()


@api.route('', methods=['POST'])
@roles_required(*ROLES_LIDERAZGO)
def create():
    nombre = _nombre(request.get_json(silent=True) or {})
    if not nombre:
        return error_response(400, "Missing or invalid fields")

    try:
        ruta = Ruta(nombre=nombre)
        db.session.add(ruta)
        db.session.commit()

        log.info(f"Route created: {ruta.id} {ruta.nombre}")
        return success_response(201, ruta.to_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error creating route: {e}")
        return error_response(500, "Internal server error")


@api.route('', methods=['GET'])
@token_required
def get_all():
    try:
        rutas = Ruta.query.order_by(Ruta.id).all()
        return success_response(200, [r.to_dict() for r in rutas])
    except Exception as e:
        log.error(f"Error fetching routes: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    ruta_id = parse_id(id)
    if ruta_id is None:
        return error_response(400, "Invalid ID")
    try:
        ruta = db.session.get(Ruta, ruta_id)
        if not ruta:
            return error_response(404, "Route not found")
        return success_response(200, ruta.to_dict())
    except Exception as e:
        log.error(f"Error fetching route {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['PATCH'])
@roles_required(*ROLES_LIDERAZGO)
def update(id):
    ruta_id = parse_id(id)
    if ruta_id is None:
        return error_response(400, "Invalid ID")
    nombre = _nombre(request.get_json(silent=True) or {})
    if not nombre:
        return error_response(400, "Missing or invalid fields")

    try:
        ruta = db.session.get(Ruta, ruta_id)
        if not ruta:
            return error_response(404, "Route not found")
        ruta.nombre = nombre
        db.session.commit()

        log.info(f"Route {ruta.id} renamed to {nombre}")
        return success_response(200, {"message": "Route updated"})
    except Exception as e:
        db.session.rollback()
        log.error(f"Error updating route {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['DELETE'])
@roles_required(*ROLES_LIDERAZGO)
def delete(id):
    ruta_id = parse_id(id)
    if ruta_id is None:
        return error_response(400, "Invalid ID")
    try:
        ruta = db.session.get(Ruta, ruta_id)
        if not ruta:
            return error_response(404, "Route not found")
        # Las comunidades y pedidos de la ruta se borran en cascada
        db.session.delete(ruta)
        db.session.commit()

        log.info(f"Route deleted: {ruta_id}")
        return success_response(204)
    except Exception as e:
        db.session.rollback()
        log.error(f"Error deleting route {id}: {e}")
        return error_response(500, "Internal server error")
