import logging

from flask import Blueprint, g, request
from sqlalchemy.exc import IntegrityError

from bamx import db
from bamx.auth import admin_required, is_admin, self_or_admin, token_required
from bamx.models import ROLES, Pedido, Usuario
from bamx.responses import error_response, parse_id, success_response
from bamx.routes.auth import MIN_PASSWORD, hash_password
from bamx.services.email import send_verification_email

log = logging.getLogger(__name__)

api = Blueprint('usuarios', __name__)

CAMPOS_PROPIOS = ('username', 'email', 'password')
CAMPOS_ADMIN = ('rol', 'verificado', 'activo')


def _get_usuario(id):
    """Regresa (usuario, error_response)."""
    usuario_id = parse_id(id)
    if usuario_id is None:
        return None, error_response(400, "Invalid ID")
    usuario = db.session.get(Usuario, usuario_id)
    if not usuario:
        return None, error_response(404, "User not found")
    return usuario, None


@api.route('', methods=['GET'])
@admin_required
def get_all():
    try:
        usuarios = Usuario.query.order_by(Usuario.id).all()
        return success_response(200, [u.to_dict() for u in usuarios])
    except Exception as e:
        log.error(f"Error fetching users: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['GET'])
@self_or_admin
def get_by_id(id):
    try:
        usuario, error = _get_usuario(id)
        if error:
            return error
        return success_response(200, usuario.to_dict())
    except Exception as e:
        log.error(f"Error fetching user {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['PATCH'])
@self_or_admin
def update(id):
    data = request.get_json(silent=True) or {}
    permitidos = CAMPOS_PROPIOS + (CAMPOS_ADMIN if is_admin() else ())
    cambios = {campo: data[campo] for campo in permitidos if campo in data}
    if not cambios:
        return error_response(400, "No fields to update")

    for campo in ('username', 'email'):
        if campo in cambios:
            if not isinstance(cambios[campo], str) or not cambios[campo].strip():
                return error_response(400, f"Campo inválido: {campo}")
            cambios[campo] = cambios[campo].strip()
    if 'email' in cambios:
        cambios['email'] = cambios['email'].lower()
    if 'password' in cambios:
        password = cambios['password']
        if not isinstance(password, str) or len(password) < MIN_PASSWORD:
            return error_response(400, f"La contraseña debe tener al menos {MIN_PASSWORD} caracteres")
        cambios['password'] = hash_password(password)
    if 'rol' in cambios and cambios['rol'] not in ROLES:
        return error_response(400, "Rol inválido")
    for campo in ('verificado', 'activo'):
        if campo in cambios and not isinstance(cambios[campo], bool):
            return error_response(400, f"Campo inválido: {campo}")

    try:
        usuario, error = _get_usuario(id)
        if error:
            return error

        recien_verificado = cambios.get('verificado') is True and not usuario.verificado
        for campo, valor in cambios.items():
            setattr(usuario, campo, valor)
        db.session.commit()

        if recien_verificado:
            send_verification_email(usuario)

        log.info(f"User {usuario.id} updated by {g.user['id']}: {sorted(cambios)}")
        return success_response(200, usuario.to_dict())
    except IntegrityError:
        db.session.rollback()
        return error_response(422, "El correo electrónico ya está registrado")
    except Exception as e:
        db.session.rollback()
        log.error(f"Error updating user {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>', methods=['DELETE'])
@admin_required
def delete(id):
    try:
        usuario, error = _get_usuario(id)
        if error:
            return error

        # Baja lógica: los pedidos y tickets conservan a su autor
        usuario.activo = False
        db.session.commit()

        log.info(f"User {usuario.id} deactivated by {g.user['id']}")
        return success_response(204)
    except Exception as e:
        db.session.rollback()
        log.error(f"Error deleting user {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/<id>/verificar', methods=['PATCH'])
@admin_required
def verify(id):
    data = request.get_json(silent=True) or {}
    verificado = data.get('verificado', True)
    if not isinstance(verificado, bool):
        return error_response(400, "Campo inválido: verificado")

    try:
        usuario, error = _get_usuario(id)
        if error:
            return error

        usuario.verificado = verificado
        db.session.commit()

        if verificado:
            send_verification_email(usuario)

        log.info(f"User {usuario.id} verificado={verificado}")
        return success_response(200, usuario.to_dict())
    except Exception as e:
        db.session.rollback()
        log.error(f"Error verifying user {id}: {e}")
        return error_response(500, "Internal server error")


@api.route('/todos/pendientes', methods=['GET'])
@admin_required
def get_pending():
    try:
        usuarios = Usuario.query.filter_by(verificado=False, activo=True).order_by(Usuario.created_at).all()
        return success_response(200, [u.to_dict() for u in usuarios])
    except Exception as e:
        log.error(f"Error fetching pending users: {e}")
        return error_response(500, "Internal server error")


@api.route('/todos/conPedidos', methods=['GET'])
@token_required
def get_with_orders():
    try:
        usuarios = (Usuario.query
                    .filter(Usuario.id.in_(db.select(Pedido.id_ts).distinct()))
                    .order_by(Usuario.username)
                    .all())
        return success_response(200, [{'id': u.id, 'username': u.username} for u in usuarios])
    except Exception as e:
        log.error(f"Error fetching users with orders: {e}")
        return error_response(500, "Internal server error")
