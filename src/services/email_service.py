"""Email service using Resend for transactional emails."""

import html as html_lib
import logging
from typing import Any

import resend

from src.core.config import get_settings
from src.core.events import EventBus
from src.schemas.events import (
    AccountConfirmationRequestedEvent,
    PasswordResetRequestedEvent,
    UserInvitationSentEvent,
)

logger = logging.getLogger(__name__)


def _layout(title: str, body_html: str, action_url: str, action_label: str, footer: str) -> str:
    """Wrap ``body_html`` in the shared template. ``body_html`` must already be escaped."""
    action_url = html_lib.escape(action_url, quote=True)
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #1f3b73; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">{title}</h1>
    </div>

    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
        {body_html}

        <div style="text-align: center; margin: 30px 0;">
            <a href="{action_url}" style="background: #1f3b73; color: white; padding: 14px 32px; text-decoration: none; border-radius: 8px; font-weight: 600; font-size: 16px; display: inline-block;">
                {action_label}
            </a>
        </div>

        <p style="font-size: 12px; color: #9ca3af; margin-top: 30px; text-align: center;">{footer}</p>

        <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 25px 0;">

        <p style="font-size: 12px; color: #9ca3af; text-align: center; margin: 0;">
            If the button doesn't work, copy and paste this link:<br>
            <a href="{action_url}" style="color: #1f3b73; word-break: break-all;">{action_url}</a>
        </p>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend.

    Subscribed to domain events by :func:`register_email_handlers`. Delivery
    failures are logged and never propagate to the publisher.
    """

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.invitation_expiry_days = settings.invitation_expiry_days

    def _send(self, to_email: str, subject: str, html: str, text: str, kind: str) -> dict[str, Any]:
        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })

            logger.info("%s email sent, id: %s", kind, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send %s email: %s", kind, str(e))
            return {"success": False, "error": str(e)}

    async def send_invitation_email(self, event: UserInvitationSentEvent) -> dict[str, Any]:
        """Send the invitation link to the invited address.

        Args:
            event: The published invitation event.

        Returns:
            dict: ``success`` flag and Resend email id or error.
        """
        company_name = event.company_name or "your team"
        message_html = (
            f'<p style="font-size: 14px; color: #6b7280; font-style: italic;">"{html_lib.escape(event.personal_message)}"</p>'
            if event.personal_message
            else ""
        )
        html = _layout(
            "You're Invited!",
            f'<p style="font-size: 16px; margin-bottom: 20px;">You have been invited to join <strong>{html_lib.escape(company_name)}</strong>.</p>'
            + message_html,
            event.invitation_link,
            "Accept Invitation",
            f"This invitation expires in {self.invitation_expiry_days} days. "
            "If you didn't expect this invitation, you can safely ignore this email.",
        )
        text = f"""
You're invited to join {company_name}!

{event.personal_message or ""}

Accept your invitation here:
{event.invitation_link}

This invitation expires in {self.invitation_expiry_days} days. If you didn't expect this invitation, you can safely ignore this email.
"""
        return self._send(event.email, f"You're invited to join {company_name}", html, text, "Invitation")

    async def send_confirmation_email(self, event: AccountConfirmationRequestedEvent) -> dict[str, Any]:
        company_name = event.company_name or "your company"
        html = _layout(
            "Confirm your account",
            f'<p style="font-size: 16px;">Thanks for registering <strong>{html_lib.escape(company_name)}</strong>. '
            "Please confirm your email address to activate your account.</p>",
            event.confirmation_link,
            "Confirm Account",
            "If you didn't create this account, you can safely ignore this email.",
        )
        text = f"""
Confirm your account for {company_name}:
{event.confirmation_link}
"""
        return self._send(event.email, "Confirm your account", html, text, "Confirmation")

    async def send_password_reset_email(self, event: PasswordResetRequestedEvent) -> dict[str, Any]:
        html = _layout(
            "Reset your password",
            '<p style="font-size: 16px;">We received a request to reset your password.</p>',
            event.reset_link,
            "Reset Password",
            "If you didn't request a password reset, you can safely ignore this email.",
        )
        text = f"""
Reset your password here:
{event.reset_link}
"""
        return self._send(event.email, "Reset your password", html, text, "Password reset")


def register_email_handlers(bus: EventBus, service: EmailService | None = None) -> EmailService:
    """Subscribe email delivery to the events that carry links."""
    service = service or EmailService()
    bus.subscribe(UserInvitationSentEvent, service.send_invitation_email)
    bus.subscribe(AccountConfirmationRequestedEvent, service.send_confirmation_email)
    bus.subscribe(PasswordResetRequestedEvent, service.send_password_reset_email)
    return service
