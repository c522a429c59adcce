import logging

from flask import Blueprint, g, request

from bamx import db
from bamx.auth import admin_required, is_admin, token_required
from bamx.models import ESTATUS_TICKET, PRIORIDADES_TICKET, Ticket, Usuario
from bamx.responses import error_response, parse_id, success_response
from bamx.services.email import send_ticket_email

log = logging.getLogger(__name__)

api = Blueprint('tickets', __name__)


def _get_ticket(id):
    ticket_id = parse_id(id)
    if ticket_id is None:
        return None, error_response(400, "Invalid ID")
    ticket = db.session.get(Ticket, ticket_id)
    if not ticket:
        return None, error_response(404, "Ticket no encontrado")
    return ticket, None


@api.route('', methods=['POST'])
@token_required
def create():
    data = request.get_json(silent=True) or {}
    descripcion = data.get('descripcion')
    prioridad = data.get('prioridad') or 'baja'
    if not isinstance(descripcion, str) or not descripcion.strip():
        return error_response(400, "Faltan campos requeridos")
    if prioridad not in PRIORIDADES_TICKET:
        return error_response(400, "Prioridad inválida")

    usuario_id = g.user['id']
    if data.get('idUsuario') is not None:
        usuario_id = parse_id(data['idUsuario'])
        if usuario_id is None:
            return error_response(400, "Faltan campos requeridos")

    try:
        usuario = db.session.get(Usuario, usuario_id)
        if not usuario:
            return error_response(404, "Usuario no encontrado")

        ticket = Ticket(id_usuario=usuario.id, descripcion=descripcion.strip(), prioridad=prioridad)
        db.session.add(ticket)
        db.session.commit()
        log.info(f"Ticket {ticket.id} created by user {usuario.id}")

        send_ticket_email(usuario, ticket, "creacion")
        return success_response(201, ticket.to_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error creating ticket: {e}")
        return error_response(500, "Error interno del servidor")


@api.route('', methods=['GET'])
@admin_required
def get_all():
    try:
        tickets = Ticket.query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()
        return success_response(200, [t.to_dict() for t in tickets])
    except Exception as e:
        log.error(f"Error fetching tickets: {e}")
        return error_response(500, "Error interno del servidor")


@api.route('/<id>', methods=['GET'])
@token_required
def get_by_id(id):
    try:
        ticket, error = _get_ticket(id)
        if error:
            return error
        if ticket.id_usuario != g.user['id'] and not is_admin():
            return error_response(403, "No autorizado")
        return success_response(200, ticket.to_dict())
    except Exception as e:
        log.error(f"Error fetching ticket {id}: {e}")
        return error_response(500, "Error interno del servidor")


@api.route('/<id>', methods=['PATCH'])
@admin_required
def update(id):
    data = request.get_json(silent=True) or {}
    if 'estatus' in data and data['estatus'] not in ESTATUS_TICKET:
        return error_response(400, "Estatus inválido")
    if 'prioridad' in data and data['prioridad'] not in PRIORIDADES_TICKET:
        return error_response(400, "Prioridad inválida")

    try:
        ticket, error = _get_ticket(id)
        if error:
            return error

        for campo in ('estatus', 'prioridad', 'comentarios'):
            if campo in data:
                setattr(ticket, campo, data[campo])
        db.session.commit()
        log.info(f"Ticket {ticket.id} updated by {g.user['id']}")

        send_ticket_email(ticket.usuario, ticket, "actualizacion")
        return success_response(200, ticket.to_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error updating ticket {id}: {e}")
        return error_response(500, "Error interno del servidor")
