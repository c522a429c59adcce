import logging

from flask import Blueprint

from bamx import db
from bamx.auth import token_required
from bamx.models import Municipio
from bamx.responses import error_response, parse_id, success_response

log = logging.getLogger(__name__)

api = Blueprint('municipios', __name__)


@api.route('', methods=['GET'])
@token_required
def get_all():
    try:
        municipios = Municipio.query.order_by(Municipio.nombre).all()
        return success_response(200, [m.to_dict() for m in municipios])
    except Exception as e:
        log.error(f"Error fetching municipalities: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    municipio_id = parse_id(id)
    if municipio_id is None:
        return error_response(400, "Invalid ID")
    try:
        municipio = db.session.get(Municipio, municipio_id)
        if not municipio:
            return error_response(404, "Municipality not found")
        return success_response(200, municipio.to_dict())
    except Exception as e:
        log.error(f"Error fetching municipality {id}: {e}")
        return error_response(500, "Internal server error")
