"""
Email service.

Delivers invitation and password-reset messages via SMTP using
aiosmtplib.  Delivery is fire-and-forget from the caller's point of
view: `deliver` returns False on failure and never raises, so a bounced
email does not roll back the account change that produced it
(`resend_invitation` / another reset request is the recovery path).

The payload carries the one-time secrets.  They go into the message
body and nowhere else: log lines name the template and the recipient
only.
"""

import logging
from email.message import EmailMessage

import aiosmtplib

from authcore.core.config import settings

logger = logging.getLogger(__name__)

INVITATION = "invitation"
PASSWORD_RESET = "password_reset"


def _invitation_message(payload: dict) -> tuple[str, str]:
    activate_link = f"{settings.FRONTEND_URL}/activate?token={payload['token']}"
    name = payload.get("first_name") or "there"
    subject = f"You've been invited to {settings.APP_NAME}"
    html_body = f"""\
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2c3e50;">Hi {name},</h2>
            <p>You have been invited to join <strong>{settings.APP_NAME}</strong>
               as <strong>{payload.get('role_name') or 'a member'}</strong>.</p>
            <p>Your temporary password is:
               <code style="font-size: 16px;">{payload['temporary_password']}</code></p>
            <p>Click the button below to choose your own password and activate your account:</p>
            <div style="text-align: center; margin: 30px 0;">
                <a href="{activate_link}"
                   style="background-color: #3498db; color: #fff; padding: 12px 30px;
                          text-decoration: none; border-radius: 5px; font-size: 16px;">
                    Activate Account
                </a>
            </div>
            <p style="color: #7f8c8d; font-size: 13px;">
                If the button doesn't work, copy and paste this link into your browser:<br>
                <a href="{activate_link}">{activate_link}</a>
            </p>
            <p style="color: #7f8c8d; font-size: 13px;">
                This invitation will expire in {settings.INVITATION_EXPIRE_HOURS} hours.
            </p>
        </div>
    </body>
    </html>
    """
    return subject, html_body


def _reset_message(payload: dict) -> tuple[str, str]:
    reset_link = f"{settings.FRONTEND_URL}/reset-password?token={payload['token']}"
    subject = f"Reset your {settings.APP_NAME} password"
    html_body = f"""\
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
            <h2 style="color: #2c3e50;">Password reset</h2>
            <p>We received a request to reset the password for your account.</p>
            <div style="text-align: center; margin: 30px 0;">
                <a href="{reset_link}"
                   style="background-color: #3498db; color: #fff; padding: 12px 30px;
                          text-decoration: none; border-radius: 5px; font-size: 16px;">
                    Reset Password
                </a>
            </div>
            <p style="color: #7f8c8d; font-size: 13px;">
                This link will expire in {settings.PASSWORD_RESET_EXPIRE_MINUTES} minutes.
                If you did not ask for a reset you can ignore this email.
            </p>
        </div>
    </body>
    </html>
    """
    return subject, html_body


TEMPLATES = {
    INVITATION: _invitation_message,
    PASSWORD_RESET: _reset_message,
}


async def send_email(to: str, subject: str, html_body: str) -> None:
    """Send an HTML email via the configured SMTP server."""
    message = EmailMessage()
    message["From"] = settings.SENDER_EMAIL
    message["To"] = to
    message["Subject"] = subject
    message.set_content(html_body, subtype="html")

    await aiosmtplib.send(
        message,
        hostname=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        username=settings.SENDER_EMAIL or None,
        password=settings.EMAIL_PASSWORD or None,
        start_tls=True,
    )


async def deliver(destination: str, template_kind: str, payload: dict) -> bool:
    """Render `template_kind` with `payload` and send it to `destination`.

    Returns True on success, False when delivery is disabled or fails.
    """
    render = TEMPLATES.get(template_kind)
    if render is None:
        raise ValueError(f"unknown template kind: {template_kind!r}")

    if not settings.EMAIL_ENABLED:
        logger.info("Email delivery disabled; %s message to %s not sent", template_kind, destination)
        return False

    subject, html_body = render(payload)
    try:
        await send_email(destination, subject, html_body)
    except (aiosmtplib.SMTPException, OSError) as exc:
        # exc_info would drag the rendered message into the log.
        logger.error(
            "Failed to deliver %s email to %s: %s", template_kind, destination, type(exc).__name__,
        )
        return False

    logger.info("%s email sent to %s", template_kind, destination)
    return True
