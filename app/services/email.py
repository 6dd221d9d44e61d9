"""
Email Service using Resend

Status notification emails: one per queued EmailNotification, telling a
subscriber that a VPS model became available (or went out of stock) in a
datacenter they follow.
"""

from dataclasses import dataclass

import resend

from app.core.catalog import VPS_MODELS, datacenter_name
from app.core.config import settings
from app.core.logging_config import get_logger
from app.models.status import StatusChange

logger = get_logger(__name__)

# Initialize Resend
resend.api_key = settings.RESEND_API_KEY

OVH_ORDER_URL = "https://www.ovhcloud.com/en/vps/"


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str


def render_status_notification(
    model: int,
    datacenter: str,
    status_change: StatusChange,
    unsubscribe_token: str,
) -> EmailContent:
    vps = VPS_MODELS.get(model)
    model_name = vps.name if vps else f"VPS-{model}"
    specs = vps.specs if vps else ""
    dc_name = datacenter_name(datacenter)
    is_available = status_change == StatusChange.BECAME_AVAILABLE
    status_text = "Available" if is_available else "Out of Stock"

    app_url = settings.APP_URL.rstrip("/")
    manage_url = f"{app_url}/manage/{unsubscribe_token}"
    unsubscribe_url = f"{app_url}/unsubscribe/{unsubscribe_token}"

    accent = "#10b981" if is_available else "#64748b"
    if is_available:
        body = (
            "Great news! This VPS is now available for purchase. "
            "Availability can change quickly, so order as soon as possible."
        )
        action = f"""
            <div style="text-align: center; margin: 30px 0;">
                <a href="{OVH_ORDER_URL}" style="display: inline-block; background-color: {accent}; color: #fff; padding: 14px 32px; text-decoration: none; font-weight: bold; font-size: 14px; border-radius: 4px;">ORDER NOW</a>
            </div>"""
        text_body = f"{body}\n\nOrder now: {OVH_ORDER_URL}"
    else:
        body = "This VPS model is currently out of stock. We'll notify you as soon as it becomes available again."
        action = ""
        text_body = body

    html = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; background-color: #f8fafc; color: #0f172a; margin: 0; padding: 40px 20px;">
    <div style="max-width: 600px; margin: 0 auto; background-color: #fff; border-radius: 8px; border: 1px solid #e2e8f0; overflow: hidden;">
        <!-- Header -->
        <div style="background-color: {accent}; padding: 30px; text-align: center;">
            <h1 style="margin: 0; font-size: 22px; color: #fff;">{model_name} is {status_text}</h1>
            <p style="margin: 8px 0 0 0; color: #f1f5f9;">{dc_name}</p>
        </div>

        <!-- Content -->
        <div style="padding: 40px 30px;">
            <p style="color: #475569; line-height: 1.6; margin: 0 0 20px 0;">
                <strong>{model_name}</strong> ({specs}) in <strong>{dc_name}</strong> is <strong>{status_text}</strong>.
            </p>
            <p style="color: #475569; line-height: 1.6; margin: 0;">{body}</p>
            {action}
        </div>

        <!-- Footer -->
        <div style="padding: 20px 30px; border-top: 1px solid #e2e8f0; text-align: center; font-size: 13px;">
            <a href="{app_url}" style="color: #3b82f6; text-decoration: none; margin: 0 8px;">Dashboard</a>
            <a href="{manage_url}" style="color: #3b82f6; text-decoration: none; margin: 0 8px;">Manage Subscriptions</a>
            <a href="{unsubscribe_url}" style="color: #64748b; text-decoration: none; margin: 0 8px;">Unsubscribe</a>
        </div>
    </div>
</body>
</html>
"""

    text = (
        "VPS Alert - Status Update\n\n"
        f"{model_name} ({specs}) in {dc_name} is {status_text}.\n\n"
        f"{text_body}\n\n"
        "Manage your notifications:\n"
        f"- Dashboard: {app_url}\n"
        f"- Manage Subscriptions: {manage_url}\n"
        f"- Unsubscribe: {unsubscribe_url}\n\n"
        "VPS Alert Team\n"
        f"{app_url}"
    )

    return EmailContent(subject=f"{model_name} is {status_text} in {dc_name}", html=html, text=text)


def send_status_notification_email(
    to_email: str,
    model: int,
    datacenter: str,
    status_change: StatusChange,
    unsubscribe_token: str,
) -> bool:
    """
    Send one status notification.
    Returns True if sent successfully, False otherwise.
    """
    if not settings.RESEND_API_KEY:
        logger.warning("[Email] Skipping status notification - RESEND_API_KEY not configured")
        return False

    content = render_status_notification(model, datacenter, status_change, unsubscribe_token)
    unsubscribe_url = f"{settings.APP_URL.rstrip('/')}/unsubscribe/{unsubscribe_token}"

    try:
        resend.Emails.send(
            {
                "from": settings.FROM_EMAIL,
                "to": [to_email],
                "subject": content.subject,
                "html": content.html,
                "text": content.text,
                "headers": {
                    "List-Unsubscribe": f"<{unsubscribe_url}>",
                    "X-Priority": "1" if status_change == StatusChange.BECAME_AVAILABLE else "3",
                },
            }
        )
        logger.info(f"[Email] Status notification sent to {to_email}", model=model, datacenter=datacenter)
        return True
    except Exception as e:
        logger.error(f"[Email] Failed to send status notification to {to_email}: {e}")
        return False


def is_email_configured() -> bool:
    return bool(settings.RESEND_API_KEY and settings.FROM_EMAIL)
