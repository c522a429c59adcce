import logging
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request

from bamx import db
from bamx.auth import roles_required, token_required
from bamx.models import ROLES_LIDERAZGO, Comunidad, Municipio, Ruta
from bamx.responses import error_response, parse_id, success_response

log = logging.getLogger(__name__)

api = Blueprint('comunidades', __name__)

CAMPOS_EDITABLES = ('nombre', 'jefa', 'contacto', 'direccion', 'notas')


def _costo(value):
    """Regresa el costo como Decimal o None si no es un número no negativo."""
    if isinstance(value, bool):
        return None
    try:
        costo = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not costo.is_finite() or costo < 0:
        return None
    return costo


def _resolver_municipio(data):
    """Municipio por ``idMunicipio`` o por nombre en ``municipio`` (se crea si no existe)."""
    if data.get('idMunicipio') is not None:
        municipio_id = parse_id(data['idMunicipio'])
        return db.session.get(Municipio, municipio_id) if municipio_id is not None else None

    nombre = data.get('municipio')
    if not isinstance(nombre, str) or not nombre.strip():
        return None
    nombre = nombre.strip()
    municipio = Municipio.query.filter_by(nombre=nombre).first()
    if not municipio:
        municipio = Municipio(nombre=nombre)
        db.session.add(municipio)
        db.session.flush()
        log.info(f"Municipality created: {nombre}")
    return municipio


def _ordenadas(query):
    return query.order_by(Comunidad.nombre, Comunidad.id)


@api.route('', methods=['POST'])
@roles_required(*ROLES_LIDERAZGO)
def create():
    data = request.get_json(silent=True) or {}
    nombre = data.get('nombre')
    ruta_id = parse_id(data.get('idRuta'))
    if not isinstance(nombre, str) or not nombre.strip() or ruta_id is None:
        return error_response(400, "Missing or invalid fields")
    if data.get('idMunicipio') is None and not data.get('municipio'):
        return error_response(400, "Missing or invalid fields")

    costo = None
    if data.get('costoPaquete') is not None:
        costo = _costo(data['costoPaquete'])
        if costo is None:
            return error_response(400, "Missing or invalid fields")

    try:
        if not db.session.get(Ruta, ruta_id):
            return error_response(404, "Route not found")
        municipio = _resolver_municipio(data)
        if not municipio:
            db.session.rollback()
            return error_response(404, "Municipality not found")

        comunidad = Comunidad(
            nombre=nombre.strip(),
            municipio=municipio,
            id_ruta=ruta_id,
            jefa=data.get('jefa'),
            contacto=data.get('contacto'),
            direccion=data.get('direccion'),
            notas=data.get('notas'),
        )
        if costo is not None:
            comunidad.costo_paquete = costo
        db.session.add(comunidad)
        db.session.commit()

        log.info(f"Comunidad successfully registered: {comunidad.id}")
        return success_response(201, comunidad.to_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error creating comunidad: {e}")
        return error_response(500, "Internal server error")


@api.route('', methods=['GET'])
@token_required
def get_all():
    page = parse_id(request.args.get('page', ''))
    limit = parse_id(request.args.get('limit', ''))

    try:
        query = _ordenadas(Comunidad.query)
        if page and limit:
            query = query.offset((page - 1) * limit).limit(limit)
        comunidades = query.all()
        return success_response(200, [c.to_dict() for c in comunidades])
    except Exception as e:
        log.error(f"Error fetching communities: {e}")
        return error_response(500, "Internal server error")


@api.route('/ruta/<ruta>', methods=['GET'])
@token_required
def get_by_route(ruta):
    ruta_id = parse_id(ruta)
    if ruta_id is None:
        return error_response(400, "Invalid ID")
    try:
        comunidades = _ordenadas(Comunidad.query.filter_by(id_ruta=ruta_id)).all()
        log.info(f"Fetched {len(comunidades)} communities for route {ruta_id}")
        return success_response(200, [c.to_dict() for c in comunidades])
    except Exception as e:
        log.error(f"Error fetching communities for route {ruta}: {e}")
        return error_response(500, "Internal server error")


@api.route('/ciudad/<municipio>', methods=['GET'])
@token_required
def get_by_city(municipio):
    try:
        query = Comunidad.query.join(Municipio)
        municipio_id = parse_id(municipio)
        if municipio_id is not None:
            query = query.filter(Municipio.id == municipio_id)
        else:
            query = query.filter(Municipio.nombre == municipio.strip())
        comunidades = _ordenadas(query).all()

        log.info(f"Fetched {len(comunidades)} communities for municipality {municipio}")
        return success_response(200, [c.to_dict() for c in comunidades])
    except Exception as e:
        log.error(f"Error fetching communities for municipality {municipio}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    comunidad_id = parse_id(id)
    if comunidad_id is None:
        log.warning(f"Invalid ID provided: {id}")
        return error_response(400, "Invalid ID")
    try:
        comunidad = db.session.get(Comunidad, comunidad_id)
        if not comunidad:
            log.warning(f"Community not found with ID: {id}")
            return error_response(404, "Community not found")
        return success_response(200, comunidad.to_dict())
    except Exception as e:
        log.error(f"Error fetching community: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['PATCH'])
@roles_required(*ROLES_LIDERAZGO)
def update(id):
    comunidad_id = parse_id(id)
    if comunidad_id is None:
        log.warning(f"Invalid ID provided: {id}")
        return error_response(400, "Invalid ID")
    data = request.get_json(silent=True) or {}

    try:
        comunidad = db.session.get(Comunidad, comunidad_id)
        if not comunidad:
            log.warning(f"Community not found with ID: {id}")
            return error_response(404, "Community not found")

        cambios = {campo: data[campo] for campo in CAMPOS_EDITABLES if campo in data}
        if 'nombre' in cambios and (not isinstance(cambios['nombre'], str) or not cambios['nombre'].strip()):
            return error_response(400, "Missing or invalid fields")

        if 'costoPaquete' in data:
            costo = _costo(data['costoPaquete'])
            if costo is None:
                return error_response(400, "El costo del paquete debe ser un número no negativo")
            cambios['costo_paquete'] = costo

        if 'idRuta' in data:
            ruta_id = parse_id(data['idRuta'])
            if ruta_id is None or not db.session.get(Ruta, ruta_id):
                return error_response(400, "Missing or invalid fields")
            cambios['id_ruta'] = ruta_id

        if 'idMunicipio' in data or 'municipio' in data:
            municipio = _resolver_municipio(data)
            if not municipio:
                db.session.rollback()
                return error_response(400, "Missing or invalid fields")
            cambios['municipio'] = municipio

        if not cambios:
            return error_response(400, "No fields to update")

        for campo, valor in cambios.items():
            setattr(comunidad, campo, valor)
        db.session.commit()

        log.info(f"Community updated successfully: {id}")
        return success_response(200, {"message": "Community updated"})
    except Exception as e:
        db.session.rollback()
        log.error(f"Error updating community: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['DELETE'])
@roles_required(*ROLES_LIDERAZGO)
def delete(id):
    comunidad_id = parse_id(id)
    if comunidad_id is None:
        log.warning(f"Invalid ID provided: {id}")
        return error_response(400, "Invalid ID")
    try:
        comunidad = db.session.get(Comunidad, comunidad_id)
        if not comunidad:
            log.warning(f"Community not found with ID: {id}")
            return error_response(404, "Community not found")

        db.session.delete(comunidad)
        db.session.commit()

        log.info(f"Community deleted successfully: {id}")
        return success_response(204)
    except Exception as e:
        db.session.rollback()
        log.error(f"Error deleting community: {e}")
        return error_response(500, "Internal server error")
