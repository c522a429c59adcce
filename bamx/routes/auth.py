import logging
import secrets
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request
from sqlalchemy.exc import IntegrityError

from bamx import bcrypt, db
from bamx.auth import clear_token_cookie, create_token, set_token_cookie, token_required
from bamx.models import Usuario
from bamx.responses import error_response, success_response
from bamx.services.email import send_password_reset_email

log = logging.getLogger(__name__)

api = Blueprint('auth', __name__)

MIN_PASSWORD = 6


def hash_password(password):
    return bcrypt.generate_password_hash(password).decode('utf-8')


def _validate_passwords(password, confirm):
    if not password or not confirm:
        return 422, "Ingrese una contraseña y confírmela"
    if len(password) < MIN_PASSWORD:
        return 400, f"La contraseña debe tener al menos {MIN_PASSWORD} caracteres"
    if password != confirm:
        return 400, "Las contraseñas no coinciden"
    return None


@api.route('/registro', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip().lower()

    invalid = _validate_passwords(data.get('password'), data.get('confirmPassword'))
    if invalid:
        return error_response(*invalid)
    if not username or not email:
        return error_response(422, "Ingrese nombre de usuario y correo electrónico")

    try:
        # Verificar si el correo ya existe
        if Usuario.query.filter_by(email=email).first():
            return error_response(422, "El correo electrónico ya está registrado")

        usuario = Usuario(username=username, email=email, password=hash_password(data['password']))
        db.session.add(usuario)
        db.session.commit()

        log.info(f"User successfully registered (pending approval): {username}")
        return success_response(201, {"message": "Account pending admin approval", "userId": usuario.id})
    except IntegrityError:
        db.session.rollback()
        return error_response(422, "El correo electrónico ya está registrado")
    except Exception as e:
        db.session.rollback()
        log.error(f"Error registering user: {e}")
        return error_response(500, "Internal server error")


@api.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    try:
        usuario = Usuario.query.filter_by(email=email).first()
        if not usuario or not bcrypt.check_password_hash(usuario.password, password):
            return error_response(422, "Credenciales incorrectas")
        if not usuario.verificado:
            return error_response(403, "Account pending approval. Please contact support.")
        if not usuario.activo:
            return error_response(403, "Cuenta desactivada. Contacte a soporte.")

        token = create_token(usuario)
        response, status = success_response(200, {**usuario.to_dict(), "accessToken": token})
        set_token_cookie(response, token)

        g.user = {"id": usuario.id, "rol": usuario.rol}
        log.info(f"User successfully logged in: {usuario.id}")
        return response, status
    except Exception as e:
        log.error(f"Error logging in: {e}")
        return error_response(500, "Internal server error")


@api.route('/logout', methods=['POST'])
def logout():
    response, status = success_response(200, {"message": "Logout exitoso"})
    clear_token_cookie(response)
    return response, status


@api.route('/me', methods=['GET'])
@token_required
def me():
    try:
        usuario = db.session.get(Usuario, g.user["id"])
        if not usuario:
            return error_response(404, "Usuario no encontrado")
        return success_response(200, usuario.to_dict())
    except Exception as e:
        log.error(f"Error fetching current user: {e}")
        return error_response(500, "Error del servidor")


@api.route('/forgot-password', methods=['POST'])
def forgot_password():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    message = "Si el email existe, te enviaremos un enlace de recuperación"

    try:
        usuario = Usuario.query.filter_by(email=email, activo=True, verificado=True).first()
        if usuario:
            token = secrets.token_hex(20)
            usuario.reset_password_token = token
            usuario.reset_password_expires = datetime.utcnow() + timedelta(
                hours=current_app.config["RESET_TOKEN_HOURS"])
            db.session.commit()

            send_password_reset_email(usuario, token)
            log.info(f"Password reset requested for: {email}")
        else:
            log.warning(f"Password reset requested for unknown or inactive email: {email}")

        return success_response(200, {"message": message})
    except Exception as e:
        db.session.rollback()
        log.error(f"Error requesting password reset: {e}")
        return error_response(500, "Error al procesar la solicitud")


@api.route('/reset-password/<token>', methods=['POST'])
def reset_password(token):
    data = request.get_json(silent=True) or {}
    password, confirm = data.get('password'), data.get('confirmPassword')

    invalid = _validate_passwords(password, confirm)
    if invalid:
        return error_response(400, invalid[1])

    try:
        usuario = Usuario.query.filter(
            Usuario.reset_password_token == token,
            Usuario.reset_password_expires > datetime.utcnow(),
        ).first()
        if not usuario:
            return error_response(400, "El enlace de recuperación es inválido o ha expirado")

        usuario.password = hash_password(password)
        usuario.reset_password_token = None
        usuario.reset_password_expires = None
        db.session.commit()

        log.info(f"Password reset successful for user: {usuario.id}")
        return success_response(200, {"message": "Contraseña actualizada exitosamente"})
    except Exception as e:
        db.session.rollback()
        log.error(f"Error resetting password: {e}")
        return error_response(500, "Error al actualizar la contraseña")
