import logging

import httpx

from aula.core.config import settings
from aula.core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)

EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"


async def send_password_reset_email(to_email: str, name: str, reset_link: str) -> str | None:
    """
    Sends the password reset link using EmailJS REST API.

    Returns the link as a preview URL when nothing was sent (development
    without EmailJS credentials), otherwise None.
    """
    if not settings.emailjs_configured:
        if settings.ENVIRONMENT == "production":
            logger.error("EmailJS credentials not configured in production")
            raise MailDeliveryError()
        logger.info("EmailJS not configured. Reset link for %s: %s", to_email, reset_link)
        return reset_link

    payload = {
        "service_id": settings.EMAILJS_SERVICE_ID,
        "template_id": settings.EMAILJS_TEMPLATE_ID,
        "user_id": settings.EMAILJS_PUBLIC_KEY,
        "accessToken": settings.EMAILJS_PRIVATE_KEY,
        "template_params": {
            "to_email": to_email,
            "to_name": name,
            "reset_link": reset_link,
        },
    }

    logger.info("[EmailJS] Sending password reset email to: %s", to_email)

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(EMAILJS_URL, json=payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(
            "Failed to send reset email to %s. Status code: %s Response: %s",
            to_email, e.response.status_code, e.response.text,
        )
        raise MailDeliveryError()
    except httpx.HTTPError as e:
        logger.error("Failed to send reset email to %s: %s", to_email, e)
        raise MailDeliveryError()

    logger.info("Password reset email sent successfully to %s", to_email)
    return None
