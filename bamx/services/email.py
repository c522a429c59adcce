import logging

import requests
from flask import current_app, render_template

log = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def send_email(to, subject, html):
    api_key = current_app.config.get("RESEND_API_KEY")
    if not api_key:
        log.warning(f"RESEND_API_KEY no configurada, no se envía '{subject}' a {to}")
        return None

    response = requests.post(
        RESEND_URL,
        headers={"Authorization": f"Bearer {api_key}"},
        json={
            "from": current_app.config["MAIL_FROM"],
            "to": [to],
            "subject": subject,
            "html": html,
        },
        timeout=10,
    )
    response.raise_for_status()
    log.info(f"Correo enviado a: {to}")
    return response.json()


def send_verification_email(usuario):
    html = render_template("email/verification.html", usuario=usuario,
                           login_url=f"{current_app.config['FRONTEND_URL']}/login")
    return send_email(usuario.email, "✅ Cuenta verificada - BAMX Tepatitlán", html)


def send_password_reset_email(usuario, token):
    reset_url = f"{current_app.config['FRONTEND_URL']}/reset-password/{token}"
    html = render_template("email/reset_password.html", usuario=usuario, reset_url=reset_url,
                           horas=current_app.config["RESET_TOKEN_HOURS"])
    return send_email(usuario.email, "Recuperación de contraseña - BAMX Tepatitlán", html)


def send_ticket_email(usuario, ticket, action):
    """action: 'creacion' o 'actualizacion'."""
    if action == "creacion":
        subject = "¡Tu ticket ha sido creado! 🎉"
    else:
        subject = "Actualización de tu ticket 🔄"
    html = render_template("email/ticket.html", ticket=ticket, subject=subject, action=action)
    return send_email(usuario.email, f"{subject} #{ticket.id}", html)
