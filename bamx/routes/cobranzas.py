import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import Blueprint, g, request, send_from_directory

from bamx import db
from bamx.auth import roles_required, token_required
from bamx.models import ROL_CONTABILIDAD, ROL_DIRECCION, Cobranza, Pedido, pedido_detalle_options
from bamx.pdf import generar_pdf_cobranza
from bamx.responses import error_response, parse_id, success_response
from bamx.services.storage import cobranzas_dir, get_storage, nombre_mes

log = logging.getLogger(__name__)

api = Blueprint('cobranzas', __name__)

ROLES_COBRANZA = (ROL_DIRECCION, ROL_CONTABILIDAD)


def _importe(value):
    if value in (None, ''):
        return Decimal('0')
    if isinstance(value, bool):
        raise ValueError(value)
    try:
        importe = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(value)
    if not importe.is_finite() or importe < 0:
        raise ValueError(value)
    return importe.quantize(Decimal('0.01'))


def parse_extras(data):
    """Arpillas y excedentes del recibo; ValueError si algún importe no es válido."""
    cantidad = data.get('arpillasCantidad') or 0
    if isinstance(cantidad, str) and cantidad.strip().isdigit():
        cantidad = int(cantidad)
    if isinstance(cantidad, bool) or not isinstance(cantidad, int) or cantidad < 0:
        raise ValueError(cantidad)
    return {
        'arpillas_cantidad': cantidad,
        'arpillas_importe': _importe(data.get('arpillasImporte')),
        'excedentes': str(data.get('excedentes') or ''),
        'excedentes_importe': _importe(data.get('excedentesImporte')),
    }


def nombre_archivo(pedido, hoy):
    return f"cobranza_pedido#{pedido.id}_{pedido.ruta.nombre}_{hoy.isoformat()}.pdf"


def _get_cobranza(id):
    cobranza_id = parse_id(id)
    if cobranza_id is None:
        return None, error_response(400, "Invalid ID")
    cobranza = db.session.get(Cobranza, cobranza_id)
    if not cobranza:
        return None, error_response(404, "Cobranza no encontrada")
    return cobranza, None


@api.route('', methods=['GET'])
@token_required
def get_all():
    try:
        cobranzas = Cobranza.query.order_by(Cobranza.fecha_generacion.desc(), Cobranza.id.desc()).all()
        return success_response(200, [c.to_dict() for c in cobranzas])
    except Exception as e:
        log.error(f"Error al obtener las cobranzas: {e}")
        return error_response(500, "Error al obtener las cobranzas")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    try:
        cobranza, error = _get_cobranza(id)
        if error:
            return error
        return success_response(200, cobranza.to_dict())
    except Exception as e:
        log.error(f"Error al obtener la cobranza {id}: {e}")
        return error_response(500, "Error al obtener la cobranza")


@api.route('/pedido/<id>', methods=['GET'])
@token_required
def get_by_pedido(id):
    pedido_id = parse_id(id)
    if pedido_id is None:
        return error_response(400, "Invalid ID")
    try:
        cobranzas = (Cobranza.query.filter_by(id_pedido=pedido_id)
                     .order_by(Cobranza.fecha_generacion.desc(), Cobranza.id.desc())
                     .all())
        return success_response(200, [c.to_dict(incluir_pedido=False) for c in cobranzas])
    except Exception as e:
        log.error(f"Error al obtener las cobranzas del pedido {id}: {e}")
        return error_response(500, "Error al obtener las cobranzas por pedido")


@api.route('/generar/<idPedido>', methods=['POST'])
@roles_required(*ROLES_COBRANZA)
def generate(idPedido):
    pedido_id = parse_id(idPedido)
    if pedido_id is None:
        return error_response(400, "Invalid ID")
    try:
        extras = parse_extras(request.get_json(silent=True) or {})
    except ValueError:
        return error_response(400, "Importes de arpillas o excedentes inválidos")

    try:
        pedido = Pedido.query.options(*pedido_detalle_options()).filter(Pedido.id == pedido_id).first()
        if not pedido:
            return error_response(404, "Pedido no encontrado")
        if pedido.cobranza_generada:
            return error_response(409, "La cobranza de este pedido ya fue generada")

        contenido = generar_pdf_cobranza(pedido, extras)
        if not contenido:
            raise RuntimeError("El PDF generado está vacío")

        # Primero se sube el archivo; la base sólo cambia si la subida tuvo éxito
        hoy = date.today()
        url = get_storage().upload(contenido, nombre_archivo(pedido, hoy), [pedido.ruta.nombre, nombre_mes(hoy)])

        pedido.cobranza_generada = True
        pedido.url_cobranza = url
        cobranza = Cobranza(id_pedido=pedido.id, url_archivo=url, generado_por=g.user['id'])
        db.session.add(cobranza)
        db.session.commit()

        log.info(f"Cobranza generada correctamente: {pedido.id}")
        return success_response(201, {
            "message": "Cobranza generada correctamente",
            "url": url,
            "cobranza": cobranza.to_dict(incluir_pedido=False),
        })
    except Exception as e:
        db.session.rollback()
        log.error(f"Error al generar la cobranza del pedido {idPedido}: {e}")
        return error_response(500, "Error al generar la cobranza")


@api.route('/<id>', methods=['DELETE'])
@roles_required(*ROLES_COBRANZA)
def delete(id):
    try:
        cobranza, error = _get_cobranza(id)
        if error:
            return error

        pedido = cobranza.pedido
        db.session.delete(cobranza)
        db.session.flush()
        if pedido and not Cobranza.query.filter_by(id_pedido=pedido.id).count():
            pedido.cobranza_generada = False
            pedido.url_cobranza = None
        db.session.commit()

        log.info(f"Cobranza eliminada: {id}")
        return success_response(204)
    except Exception as e:
        db.session.rollback()
        log.error(f"Error al eliminar la cobranza {id}: {e}")
        return error_response(500, "Error al eliminar la cobranza")


@api.route('/archivo/<path:ruta>', methods=['GET'])
@token_required
def descargar_archivo(ruta):
    return send_from_directory(cobranzas_dir(), ruta, mimetype="application/pdf")
