"""New-order notifications for the pharmacy administrator.

Each order fans out to two independent channels, an email and a WhatsApp
message. Sends run on a small thread pool and never reach the request path:
a failing channel is logged and forgotten. There are no retries.
"""

import smtplib
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from uuid import uuid4

import httpx

from config import Settings
from errors import ExternalServiceError
from logging_config import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------
class EmailPort(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> str:
        """Send an email and return a message id. Raises ExternalServiceError."""


class ChatPort(ABC):
    @abstractmethod
    def send(self, to: str, message: str) -> str:
        """Send a chat message and return a message id. Raises ExternalServiceError."""


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------
class SMTPEmailAdapter(EmailPort):
    def __init__(
        self,
        server: str,
        port: int,
        from_email: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 5.0,
    ):
        self.server = server
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> str:
        message_id = f"<{uuid4().hex}@{self.from_email.split('@')[-1]}>"

        msg = MIMEMultipart()
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
                if self.username:
                    server.starttls()
                    server.login(self.username, self.password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise ExternalServiceError("smtp", str(e) or e.__class__.__name__) from e

        return message_id


class WhatsAppChatAdapter(ChatPort):
    """Text messages through the WhatsApp Cloud API."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        base_url: str = "https://graph.facebook.com",
        version: str = "v22.0",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.version = version
        self.timeout = timeout
        self._transport = transport

    def _get_message_url(self) -> str:
        return f"{self.base_url}/{self.version}/{self.phone_number_id}/messages"

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def send(self, to: str, message: str) -> str:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": message},
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self._get_message_url(), json=payload, headers=self._get_headers())
        except httpx.TimeoutException as e:
            raise ExternalServiceError("whatsapp", "Timeout talking to WhatsApp API") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("whatsapp", f"Connection error: {e}") from e

        if response.status_code != 200:
            try:
                detail = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                detail = response.text
            raise ExternalServiceError("whatsapp", f"HTTP {response.status_code}: {detail}")

        messages = response.json().get("messages") or [{}]
        return messages[0].get("id", "")


class LoggingEmailAdapter(EmailPort):
    """Stand-in used when SMTP is not configured."""

    def send(self, to: str, subject: str, body: str) -> str:
        logger.warning("Email channel not configured, message dropped", to=to, subject=subject)
        return ""


class LoggingChatAdapter(ChatPort):
    """Stand-in used when the WhatsApp API is not configured."""

    def send(self, to: str, message: str) -> str:
        logger.warning("Chat channel not configured, message dropped", to=to)
        return ""


class FakeEmailAdapter(EmailPort):
    """Email adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, subject: str, body: str) -> str:
        if not self.should_succeed:
            raise ExternalServiceError("fake-email", self.failure_reason)

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent_emails.append({"message_id": message_id, "to": to, "subject": subject, "body": body})
        return message_id

    def reset(self):
        self.sent_emails.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"


class FakeChatAdapter(ChatPort):
    """Chat adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent_messages: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Chat delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Chat delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, message: str) -> str:
        if not self.should_succeed:
            raise ExternalServiceError("fake-chat", self.failure_reason)

        message_id = f"chat-{uuid4().hex[:12]}"
        self.sent_messages.append({"message_id": message_id, "to": to, "message": message})
        return message_id

    def reset(self):
        self.sent_messages.clear()
        self.should_succeed = True
        self.failure_reason = "Chat delivery failed"


# ---------------------------------------------------------------------------
# Template
# ---------------------------------------------------------------------------
class NewOrderTemplate:
    @staticmethod
    def render(summary: dict) -> dict:
        order_id = summary.get("order_id", "N/A")
        customer = summary.get("customer_name") or summary.get("account_id", "unknown")
        lines = [
            f"- {item.get('name', item['product_id'])} x{item['quantity']} @ {item.get('unit_price', 0):.2f}"
            for item in summary.get("line_items", [])
        ]
        contact = ", ".join(filter(None, [summary.get("customer_email"), summary.get("customer_phone")]))

        return {
            "subject": f"New order #{order_id}",
            "body": (
                f"A new order #{order_id} was placed by {customer}"
                + (f" ({contact})" if contact else "")
                + ".\n\n"
                + "\n".join(lines)
                + f"\n\nTotal: {summary.get('total_amount', 0):.2f}\n"
                + f"Deliver to: {summary.get('delivery_address', 'N/A')}\n"
            ),
        }


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------
class NotificationDispatcher:
    """Sends the new-order notice on every channel, best effort."""

    def __init__(
        self,
        email: EmailPort,
        chat: ChatPort,
        admin_email: str | None,
        admin_chat_recipient: str | None,
        max_workers: int = 4,
    ):
        self.email = email
        self.chat = chat
        self.admin_email = admin_email
        self.admin_chat_recipient = admin_chat_recipient
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def notify_new_order(self, summary: dict) -> list[Future]:
        """Queue the email and the chat message. Returns one future per channel.

        Futures resolve to True when the channel accepted the message.
        """
        rendered = NewOrderTemplate.render(summary)
        order_id = summary.get("order_id")
        return [
            self._executor.submit(self._send_email, order_id, rendered),
            self._executor.submit(self._send_chat, order_id, rendered),
        ]

    def _send_email(self, order_id: str, rendered: dict) -> bool:
        try:
            message_id = self.email.send(to=self.admin_email or "", subject=rendered["subject"], body=rendered["body"])
        except ExternalServiceError as e:
            logger.error("Order email notification failed", order_id=order_id, service=e.service, error=e.message)
            return False
        except Exception:
            logger.exception("Order email notification crashed", order_id=order_id)
            return False

        logger.info("Order email notification sent", order_id=order_id, message_id=message_id)
        return True

    def _send_chat(self, order_id: str, rendered: dict) -> bool:
        text = f"{rendered['subject']}\n\n{rendered['body']}"
        try:
            message_id = self.chat.send(to=self.admin_chat_recipient or "", message=text)
        except ExternalServiceError as e:
            logger.error("Order chat notification failed", order_id=order_id, service=e.service, error=e.message)
            return False
        except Exception:
            logger.exception("Order chat notification crashed", order_id=order_id)
            return False

        logger.info("Order chat notification sent", order_id=order_id, message_id=message_id)
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    """Wire real adapters where configured, logging stand-ins elsewhere."""
    if settings.email_configured:
        email = SMTPEmailAdapter(
            server=settings.smtp_server,
            port=settings.smtp_port,
            from_email=settings.smtp_from_email,
            username=settings.smtp_username,
            password=settings.smtp_password,
            timeout=settings.notify_timeout_seconds,
        )
    else:
        logger.warning("SMTP_SERVER or ADMIN_EMAIL not set, order emails disabled")
        email = LoggingEmailAdapter()

    if settings.whatsapp_configured:
        chat = WhatsAppChatAdapter(
            access_token=settings.whatsapp_access_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            base_url=settings.whatsapp_api_base,
            version=settings.whatsapp_api_version,
            timeout=settings.notify_timeout_seconds,
        )
    else:
        logger.warning("WhatsApp API not configured, order chat messages disabled")
        chat = LoggingChatAdapter()

    return NotificationDispatcher(
        email=email,
        chat=chat,
        admin_email=settings.admin_email,
        admin_chat_recipient=settings.admin_whatsapp_number,
        max_workers=settings.notify_max_workers,
    )
