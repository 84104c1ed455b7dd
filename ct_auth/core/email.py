# ct_auth/core/email.py
"""
Este módulo lida com o envio dos e-mails do fluxo de contas, utilizando a
biblioteca FastAPI-Mail: confirmação de cadastro, link de troca de senha e
senha gerada para usuários criados por administradores.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import List, Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from pydantic import EmailStr

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Configuração FastMail ---
# ========================
conf = ConnectionConfig(
    MAIL_USERNAME=settings.MAIL_USERNAME or "",
    MAIL_PASSWORD=settings.MAIL_PASSWORD or "",
    MAIL_FROM=settings.MAIL_FROM or "noreply@example.com",
    MAIL_PORT=settings.MAIL_PORT,
    MAIL_SERVER=settings.MAIL_SERVER or "",
    MAIL_FROM_NAME=settings.MAIL_FROM_NAME or settings.PROJECT_NAME,
    MAIL_STARTTLS=settings.MAIL_STARTTLS,
    MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
    USE_CREDENTIALS=settings.USE_CREDENTIALS,
    VALIDATE_CERTS=settings.VALIDATE_CERTS,
)

fm = FastMail(conf)

# ========================
# --- Função Principal de Envio ---
# ========================
async def send_email_async(subject: str, recipient_to: List[EmailStr], plain_text_body: str) -> bool:
    """
    Envia um e-mail de texto puro de forma assíncrona.

    Falhas de SMTP são registradas e não interrompem o fluxo que chamou
    (o cadastro continua válido mesmo se o e-mail não sair).

    Returns:
        True se o e-mail foi entregue ao servidor SMTP.
    """
    if not settings.MAIL_ENABLED:
        logger.warning(f"Envio de e-mail desabilitado (MAIL_ENABLED=false). Assunto não enviado: '{subject}'.")
        return False

    message = MessageSchema(
        subject=subject,
        recipients=recipient_to,
        body=plain_text_body,
        subtype=MessageType.plain,
    )

    try:
        logger.info(f"Tentando enviar e-mail para {recipient_to} com assunto '{subject}'...")
        await fm.send_message(message)
        logger.info(f"E-mail enviado com sucesso para {recipient_to}.")
        return True
    except Exception as e:
        logger.exception(f"Erro ao enviar e-mail para {recipient_to}: {e}")
        return False

# ========================
# --- E-mails do Fluxo de Contas ---
# ========================
async def send_confirmation_email(email: str, confirmation_token: str, callback_url: Optional[str] = None) -> bool:
    link = f"{settings.PUBLIC_URL}/auth/confirm/{confirmation_token}"
    if callback_url:
        link += f"?callbackUrl={callback_url}"
    body = (
        f"Welcome to {settings.PROJECT_NAME}!\n\n"
        f"Please confirm your account by opening the following link:\n{link}\n\n"
        "The link expires in 7 days."
    )
    return await send_email_async("Confirm your account", [email], body)


async def send_reset_password_email(email: str, renew_token: str) -> bool:
    link = f"{settings.PUBLIC_URL}/auth/reset-password/{renew_token}"
    body = (
        "We received a request to reset your password.\n\n"
        f"Use the following link to choose a new one:\n{link}\n\n"
        "If you did not request it, ignore this message."
    )
    return await send_email_async("Recover your password", [email], body)


async def send_user_created_email(email: str, password: str, confirmation_token: str, callback_url: Optional[str]) -> bool:
    """E-mail de conta criada por administrador, com a senha gerada e o link de confirmação."""
    link = f"{settings.PUBLIC_URL}/auth/confirm/{confirmation_token}"
    if callback_url:
        link += f"?callbackUrl={callback_url}"
    body = (
        f"An account was created for you in {settings.PROJECT_NAME}.\n\n"
        f"Your password is: {password}\n\n"
        f"Activate it by opening the following link:\n{link}"
    )
    return await send_email_async("Your new account", [email], body)
