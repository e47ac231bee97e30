"""New-order notifications for the shop staff.

Delivery is fire-and-forget: a failed send is logged and never reaches the
code that created the order.
"""

from __future__ import annotations

import asyncio
import smtplib
from dataclasses import dataclass, field
from decimal import Decimal
from email.message import EmailMessage
from typing import List, Protocol, Set

from utils.config import get_settings
from utils.logger import get_logger
from utils.pure import format_money, short_id

_logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationItem:
    title: str
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class OrderNotification:
    order_id: str
    customer_name: str
    customer_phone: str
    total_amount: Decimal
    items: List[NotificationItem] = field(default_factory=list)
    panel_url: str = ""


@dataclass(frozen=True)
class Email:
    to: str
    subject: str
    body: str


class Mailer(Protocol):
    async def send(self, email: Email) -> None: ...


class LogMailer:
    """Writes the message to the log instead of sending it."""

    async def send(self, email: Email) -> None:
        _logger.info(f"Mail to {email.to}: {email.subject}\n{email.body}")


class SmtpMailer:
    def __init__(self, host: str, port: int, user: str = "", password: str = "", sender: str = ""):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def _send_sync(self, email: Email) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = email.to
        message["Subject"] = email.subject
        message.set_content(email.body)
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(message)

    async def send(self, email: Email) -> None:
        await asyncio.to_thread(self._send_sync, email)


def default_mailer() -> Mailer:
    settings = get_settings()
    if settings.smtp_host:
        return SmtpMailer(
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.mail_sender,
        )
    return LogMailer()


def compose_order_email(notification: OrderNotification, to: str) -> Email:
    lines = [
        f"Nuevo pedido #{short_id(notification.order_id)}",
        "",
        f"Cliente: {notification.customer_name}",
        f"Teléfono: {notification.customer_phone}",
        "",
        "Productos:",
    ]
    lines.extend(
        f"  - {item.quantity} x {item.title} ({format_money(item.price)})"
        for item in notification.items
    )
    lines.extend(["", f"Total: {format_money(notification.total_amount)}"])
    if notification.panel_url:
        lines.extend(["", f"Ver en el panel: {notification.panel_url}"])
    return Email(
        to=to,
        subject=f"🛍️ Nuevo pedido de {notification.customer_name} - {format_money(notification.total_amount)}",
        body="\n".join(lines),
    )


# keeps scheduled sends alive until they finish
_pending: Set[asyncio.Task] = set()


async def _deliver(mailer: Mailer, email: Email, order_id: str) -> None:
    try:
        await mailer.send(email)
    except Exception:
        _logger.exception(f"Could not send notification for order {order_id}")


def notify_new_order(notification: OrderNotification, mailer: Mailer | None = None) -> asyncio.Task:
    """Schedule the admin email on the running loop and return immediately."""
    settings = get_settings()
    email = compose_order_email(notification, settings.admin_email)
    task = asyncio.get_running_loop().create_task(
        _deliver(mailer or default_mailer(), email, notification.order_id)
    )
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task
