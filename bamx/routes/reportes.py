import calendar
import logging
from datetime import MAXYEAR, date

from flask import Blueprint, request

from bamx import reports
from bamx.auth import token_required
from bamx.models import Comunidad, Pedido, pedido_detalle_options
from bamx.responses import error_response, parse_id, success_response

log = logging.getLogger(__name__)

api = Blueprint('reportes', __name__)


def _anio():
    """``año`` (o ``anio``) de la consulta; el año en curso si no viene y None si no cabe en una fecha."""
    anio = parse_id(request.args.get('año') or request.args.get('anio') or '') or date.today().year
    return anio if anio <= MAXYEAR else None


def _ventana(anio, mes=None):
    if mes and 1 <= mes <= 12:
        return date(anio, mes, 1), date(anio, mes, calendar.monthrange(anio, mes)[1])
    return date(anio, 1, 1), date(anio, 12, 31)


def cargar_pedidos(inicio=None, fin=None, ruta_id=None, ts_id=None):
    query = Pedido.query.options(*pedido_detalle_options())
    if inicio:
        query = query.filter(Pedido.fecha_entrega >= inicio)
    if fin:
        query = query.filter(Pedido.fecha_entrega <= fin)
    if ruta_id is not None:
        query = query.filter(Pedido.id_ruta == ruta_id)
    if ts_id is not None:
        query = query.filter(Pedido.id_ts == ts_id)
    return query.order_by(Pedido.fecha_entrega, Pedido.id).all()


def _filtros(anio):
    """Filtros comunes de los reportes de despensas y económicos."""
    inicio, fin = _ventana(anio, parse_id(request.args.get('mes', '')))
    pedidos = cargar_pedidos(
        inicio, fin,
        ruta_id=parse_id(request.args.get('rutaId', '')),
        ts_id=parse_id(request.args.get('tsId', '')),
    )
    return pedidos, {
        'comunidad_id': parse_id(request.args.get('comunidadId', '')),
        'municipio_id': parse_id(request.args.get('municipioId', '')),
    }


def _limit(default=10):
    return parse_id(request.args.get('limit', '')) or default


@api.route('', methods=['GET'])
@api.route('/resumen', methods=['GET'])
@token_required
def get_resumen():
    try:
        hoy = date.today()
        pedidos_anio = cargar_pedidos(*_ventana(hoy.year))
        pedidos_mes = cargar_pedidos(*_ventana(hoy.year, hoy.month))
        return success_response(200, reports.resumen(pedidos_anio, pedidos_mes))
    except Exception as e:
        log.error(f"Error building summary report: {e}")
        return error_response(500, "Internal server error")


@api.route('/despensas', methods=['GET'])
@token_required
def get_despensas():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    try:
        pedidos, filtros = _filtros(anio)
        return success_response(200, reports.reporte_despensas(pedidos, limit=_limit(), **filtros))
    except Exception as e:
        log.error(f"Error building packages report: {e}")
        return error_response(500, "Internal server error")


@api.route('/rutas', methods=['GET'])
@token_required
def get_rutas():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    try:
        pedidos = cargar_pedidos(*_ventana(anio))
        return success_response(200, reports.reporte_rutas(pedidos))
    except Exception as e:
        log.error(f"Error building routes report: {e}")
        return error_response(500, "Internal server error")


@api.route('/comunidades', methods=['GET'])
@token_required
def get_comunidades():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    comunidad_id = parse_id(request.args.get('comunidadId', ''))
    try:
        comunidades = Comunidad.query.order_by(Comunidad.id).all()
        pedidos = cargar_pedidos(*_ventana(anio))
        # La evolución de una comunidad abarca todo su historial
        evolucion = cargar_pedidos() if comunidad_id is not None else None
        return success_response(200, reports.reporte_comunidades(
            comunidades, pedidos, pedidos_evolucion=evolucion, comunidad_id=comunidad_id))
    except Exception as e:
        log.error(f"Error building communities report: {e}")
        return error_response(500, "Internal server error")


@api.route('/apadrinadas', methods=['GET'])
@token_required
def get_apadrinadas():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    try:
        pedidos_anio = cargar_pedidos(*_ventana(anio))
        pedidos_todos = cargar_pedidos()
        return success_response(200, reports.reporte_apadrinadas(pedidos_anio, pedidos_todos, limit=_limit()))
    except Exception as e:
        log.error(f"Error building sponsored packages report: {e}")
        return error_response(500, "Internal server error")


@api.route('/ts', methods=['GET'])
@token_required
def get_ts():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    try:
        pedidos = cargar_pedidos(*_ventana(anio))
        return success_response(200, reports.reporte_ts(pedidos))
    except Exception as e:
        log.error(f"Error building workers report: {e}")
        return error_response(500, "Internal server error")


@api.route('/economicos', methods=['GET'])
@token_required
def get_economicos():
    anio = _anio()
    if anio is None:
        return error_response(400, "Invalid year")
    try:
        pedidos, filtros = _filtros(anio)
        return success_response(200, reports.reporte_economico(pedidos, **filtros))
    except Exception as e:
        log.error(f"Error building economic report: {e}")
        return error_response(500, "Internal server error")


@api.route('/calendario', methods=['GET'])
@token_required
def get_calendario():
    year = parse_id(request.args.get('year', ''))
    if year and year > MAXYEAR:
        return error_response(400, "Invalid year")
    try:
        pedidos = cargar_pedidos(*_ventana(year)) if year else cargar_pedidos()
        return success_response(200, reports.calendario(pedidos))
    except Exception as e:
        log.error(f"Error building calendar: {e}")
        return error_response(500, "Internal server error")
