import logging
from datetime import date, time

from flask import Blueprint, g, request

from bamx import db
from bamx.auth import admin_required, has_role, roles_required, token_required
from bamx.models import (ESTADOS_PEDIDO, ROL_ALMACEN, ROL_COORDINADORA, ROL_DIRECCION, ROLES,
                         ROLES_LIDERAZGO, Comunidad, Pedido, PedidoComunidad, Ruta, Usuario,
                         pedido_detalle_options)
from bamx.responses import error_response, parse_id, split_param, success_response

log = logging.getLogger(__name__)

api = Blueprint('pedidos', __name__)

ROLES_CREACION = tuple(rol for rol in ROLES if rol != ROL_ALMACEN)
ROLES_EDICION = (ROL_DIRECCION, ROL_COORDINADORA, ROL_ALMACEN)

CONTEOS = {
    'despensasCosto': 'despensas_costo',
    'despensasMedioCosto': 'despensas_medio_costo',
    'despensasSinCosto': 'despensas_sin_costo',
    'despensasApadrinadas': 'despensas_apadrinadas',
    'comite': 'comite',
}


class LineaInvalida(ValueError):
    pass


def parse_fecha(value):
    """'2026-10-19' o un ISO con hora -> date; None si no es válida."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def parse_hora(value):
    if not isinstance(value, str):
        return None
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        return None


def _conteo(value, campo):
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            return int(value)
        raise LineaInvalida(f"{campo} debe ser un entero no negativo")
    if value < 0:
        raise LineaInvalida(f"{campo} debe ser un entero no negativo")
    return value


def parse_lineas(items):
    """Valida las líneas pedido-comunidad y regresa los kwargs de cada una.

    Lanza ``LineaInvalida`` si falta la comunidad, hay conteos negativos o
    no enteros, la comunidad se repite o no existe.
    """
    lineas, vistas = [], set()
    for item in items:
        if not isinstance(item, dict):
            raise LineaInvalida("Formato inválido para las comunidades del pedido")
        comunidad_id = parse_id(item.get('idComunidad', ''))
        if comunidad_id is None:
            raise LineaInvalida("Cada comunidad requiere idComunidad")
        if comunidad_id in vistas:
            raise LineaInvalida(f"La comunidad {comunidad_id} está repetida en el pedido")
        vistas.add(comunidad_id)

        linea = {'id_comunidad': comunidad_id}
        for campo_json, campo in CONTEOS.items():
            linea[campo] = _conteo(item.get(campo_json), campo_json)
        linea['arpilladas'] = bool(item.get('arpilladas', False))
        linea['observaciones'] = item.get('observaciones') or ''
        lineas.append(linea)

    if vistas:
        existentes = {c.id for c in Comunidad.query.filter(Comunidad.id.in_(vistas)).all()}
        faltantes = sorted(vistas - existentes)
        if faltantes:
            raise LineaInvalida(f"Comunidades inexistentes: {faltantes}")
    return lineas


def filtrar_pedidos(query, usuarios=(), rutas=(), estados=(), inicio=None, fin=None):
    if usuarios:
        query = query.filter(Pedido.usuario.has(Usuario.username.in_(usuarios)))
    if rutas:
        query = query.filter(Pedido.ruta.has(Ruta.nombre.in_(rutas)))
    if estados:
        query = query.filter(Pedido.estado.in_(estados))
    if inicio:
        query = query.filter(Pedido.fecha_entrega >= inicio)
    if fin:
        query = query.filter(Pedido.fecha_entrega <= fin)
    return query


def _get_pedido(id, detalle=False):
    """Regresa (pedido, error_response)."""
    pedido_id = parse_id(id)
    if pedido_id is None:
        return None, error_response(400, "Invalid ID")
    query = Pedido.query
    if detalle:
        query = query.options(*pedido_detalle_options())
    pedido = query.filter(Pedido.id == pedido_id).first()
    if not pedido:
        return None, error_response(404, "Order not found")
    return pedido, None


@api.route('', methods=['POST'])
@roles_required(*ROLES_CREACION)
def create():
    data = request.get_json(silent=True) or {}
    ruta_id = parse_id(data.get('idRuta', ''))
    fecha = parse_fecha(data.get('fechaEntrega'))
    comunidades = data.get('comunidades')
    if ruta_id is None or fecha is None or not isinstance(comunidades, list) or not comunidades:
        return error_response(400, "Missing or invalid fields")

    # Sólo el liderazgo registra pedidos a nombre de otro TS
    ts_id = g.user['id']
    if has_role(*ROLES_LIDERAZGO) and data.get('idTs') is not None:
        ts_id = parse_id(data['idTs'])
        if ts_id is None:
            return error_response(400, "Missing or invalid fields")

    try:
        lineas = parse_lineas(comunidades)
    except LineaInvalida as e:
        return error_response(400, str(e))

    try:
        if not db.session.get(Ruta, ruta_id):
            return error_response(404, "Route not found")
        if not db.session.get(Usuario, ts_id):
            return error_response(404, "User not found")

        pedido = Pedido(id_ts=ts_id, id_ruta=ruta_id, fecha_entrega=fecha)
        for linea in lineas:
            pedido.lineas.append(PedidoComunidad(**linea))
        db.session.add(pedido)
        db.session.commit()

        log.info(f"Order {pedido.id} created by {g.user['id']} with {len(lineas)} communities")
        return success_response(201, pedido.to_detail_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error creating order: {e}")
        return error_response(500, "Internal server error")


@api.route('', methods=['GET'])
@token_required
def get_all():
    page = parse_id(request.args.get('page', '')) or 1
    page_size = parse_id(request.args.get('pageSize', '')) or 10

    hoy = date.today()
    inicio = parse_fecha(request.args.get('fechaInicio')) or date(hoy.year, 1, 1)
    fin = parse_fecha(request.args.get('fechaFin')) or date(hoy.year, 12, 31)

    try:
        query = filtrar_pedidos(
            Pedido.query,
            usuarios=split_param(request.args.get('trabajadores')),
            rutas=split_param(request.args.get('rutas')),
            estados=split_param(request.args.get('estatus')),
            inicio=inicio,
            fin=fin,
        )
        total = query.count()
        pedidos = (query.options(*pedido_detalle_options())
                   .order_by(Pedido.id.desc())
                   .offset((page - 1) * page_size)
                   .limit(page_size)
                   .all())

        return success_response(200, {"pedidos": [p.to_dict() for p in pedidos], "total": total})
    except Exception as e:
        log.error(f"Error fetching orders: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    try:
        pedido, error = _get_pedido(id, detalle=True)
        if error:
            return error
        return success_response(200, pedido.to_detail_dict())
    except Exception as e:
        log.error(f"Error fetching order: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['PATCH'])
@token_required
def update(id):
    data = request.get_json(silent=True) or {}
    cambios = {}

    if data.get('fechaEntrega'):
        cambios['fecha_entrega'] = parse_fecha(data['fechaEntrega'])
        if cambios['fecha_entrega'] is None:
            return error_response(400, "Fecha de entrega inválida")
    if data.get('devoluciones') is not None:
        try:
            cambios['devoluciones'] = _conteo(data['devoluciones'], 'devoluciones')
        except LineaInvalida as e:
            return error_response(400, str(e))
    if 'horaLlegada' in data:
        if data['horaLlegada'] in (None, ''):
            cambios['hora_llegada'] = None
        else:
            cambios['hora_llegada'] = parse_hora(data['horaLlegada'])
            if cambios['hora_llegada'] is None:
                return error_response(400, "Hora de llegada inválida")
    if data.get('estado'):
        if data['estado'] not in ESTADOS_PEDIDO:
            return error_response(400, "Estado inválido")
        cambios['estado'] = data['estado']

    lineas = None
    if data.get('pedidoComunidad') is not None:
        if not isinstance(data['pedidoComunidad'], list):
            return error_response(400, "Formato inválido para pedidoComunidad")
        try:
            lineas = parse_lineas(data['pedidoComunidad'])
        except LineaInvalida as e:
            return error_response(400, str(e))

    try:
        pedido, error = _get_pedido(id)
        if error:
            return error
        if not has_role(*ROLES_EDICION) and pedido.id_ts != g.user['id']:
            return error_response(403, "You are not authorized to perform this action")

        for campo, valor in cambios.items():
            setattr(pedido, campo, valor)

        if lineas is not None:
            # Se borran las líneas anteriores antes de insertar las nuevas (misma llave compuesta)
            pedido.lineas.clear()
            db.session.flush()
            for linea in lineas:
                pedido.lineas.append(PedidoComunidad(**linea))

        db.session.commit()

        log.info(f"Order {pedido.id} updated by {g.user['id']}")
        pedido, _ = _get_pedido(pedido.id, detalle=True)
        return success_response(200, pedido.to_detail_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error updating order {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['DELETE'])
@admin_required
def delete(id):
    try:
        pedido, error = _get_pedido(id)
        if error:
            return error

        # Líneas y cobranzas se borran en cascada
        db.session.delete(pedido)
        db.session.commit()

        log.info(f"Order deleted: {id}")
        return success_response(204)
    except Exception as e:
        db.session.rollback()
        log.error(f"Error deleting order: {e}")
        return error_response(500, "Internal server error")


@api.route('/ruta/<ruta>', methods=['GET'])
@token_required
def get_by_route(ruta):
    ruta_id = parse_id(ruta)
    if ruta_id is None:
        return error_response(400, "Invalid ID")
    try:
        pedidos = (Pedido.query.options(*pedido_detalle_options())
                   .filter(Pedido.id_ruta == ruta_id)
                   .order_by(Pedido.id.desc())
                   .all())
        return success_response(200, [p.to_dict() for p in pedidos])
    except Exception as e:
        log.error(f"Error fetching orders for route {ruta}: {e}")
        return error_response(500, "Internal server error")


@api.route('/ts/<id>', methods=['GET'])
@token_required
def get_by_ts(id):
    ts_id = parse_id(id)
    if ts_id is None:
        return error_response(400, "Invalid ID")
    try:
        pedidos = (Pedido.query.options(*pedido_detalle_options())
                   .filter(Pedido.id_ts == ts_id)
                   .order_by(Pedido.id.desc())
                   .all())
        return success_response(200, [p.to_dict() for p in pedidos])
    except Exception as e:
        log.error(f"Error fetching orders for worker {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/export', methods=['POST'])
@token_required
def export():
    data = request.get_json(silent=True) or {}
    params = data.get('params') or {}

    try:
        query = filtrar_pedidos(
            Pedido.query,
            usuarios=split_param(params.get('usuarios')),
            rutas=split_param(params.get('rutas')),
            estados=split_param(params.get('estatusPedido')),
            inicio=parse_fecha(params.get('startDate')),
            fin=parse_fecha(params.get('endDate')),
        )
        pedidos = query.options(*pedido_detalle_options()).order_by(Pedido.id.desc()).all()

        log.info(f"Exported {len(pedidos)} orders")
        return success_response(200, [p.to_detail_dict() for p in pedidos])
    except Exception as e:
        log.error(f"Error exporting orders: {e}")
        return error_response(500, "Error al exportar pedidos")


@api.route('/rollback/<id>', methods=['PATCH'])
@roles_required(*ROLES_LIDERAZGO)
def rollback(id):
    try:
        pedido, error = _get_pedido(id)
        if error:
            return error

        pedido.estado = 'pendiente'
        db.session.commit()

        log.info(f"Order {pedido.id} rolled back to pendiente by {g.user['id']}")
        return success_response(200, {"message": "Estado del pedido actualizado a 'pendiente'"})
    except Exception as e:
        db.session.rollback()
        log.error(f"Error rolling back order {id}: {e}")
        return error_response(500, "Internal server error")
