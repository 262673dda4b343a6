# app/services/notification_channels.py - Outbound channels used for dunning reminders
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Optional
import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class NotificationChannel:
    """Delivers one message; returns False instead of raising on delivery failure"""

    name = "base"

    def send(self, recipient: str, subject: str, body: str) -> bool:
        raise NotImplementedError


class EmailChannel(NotificationChannel):
    """Email over SMTP"""

    name = "email"

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME
        self.use_tls = settings.SMTP_USE_TLS

    def send(self, recipient: str, subject: str, body: str) -> bool:
        if not self.smtp_host:
            logger.warning(f"SMTP not configured, email to {recipient} not sent")
            return False
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = recipient
            msg.attach(MIMEText(body, "plain", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(msg)

            logger.info(f"Email sent successfully to {recipient}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {recipient}: {e}", exc_info=True)
            return False


class BridgeChannel(NotificationChannel):
    """SMS / WhatsApp through an HTTP bridge: POST {base}/send {to, message}"""

    def __init__(self, name: str, base_url: str, api_key: str = "", timeout: float = 30,
                 client: Optional[httpx.Client] = None):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def send(self, recipient: str, subject: str, body: str) -> bool:
        if not recipient:
            logger.warning(f"No {self.name} recipient, message not sent")
            return False
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        payload = {"to": recipient, "message": body}
        try:
            client = self._client or httpx.Client(timeout=self.timeout)
            try:
                response = client.post(f"{self.base_url}/send", json=payload, headers=headers)
            finally:
                if self._client is None:
                    client.close()
            if response.status_code >= 400:
                logger.error(f"{self.name} bridge returned {response.status_code} for {recipient}")
                return False
            logger.info(f"{self.name} message sent to {recipient}")
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {self.name} message to {recipient}: {e}")
            return False


def default_channels() -> Dict[str, NotificationChannel]:
    return {
        "email": EmailChannel(),
        "sms": BridgeChannel("sms", settings.SMS_BRIDGE_URL, settings.WA_BRIDGE_API_KEY,
                             settings.WA_BRIDGE_TIMEOUT),
        "whatsapp": BridgeChannel("whatsapp", settings.WA_BRIDGE_URL, settings.WA_BRIDGE_API_KEY,
                                  settings.WA_BRIDGE_TIMEOUT),
    }
