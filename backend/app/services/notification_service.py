"""
Notification Service.

Composes the parcel lifecycle emails and hands them to an email transport.
Every attempt is recorded in notification_logs. A failed send raises
NotificationError; callers treat notifications as advisory and never let
that error fail a parcel operation.
"""

import asyncio
import logging
import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, desc

from backend.app.core.config import settings
from backend.app.core.exceptions import NotificationError
from backend.app.models.notification import NotificationLog, NotificationKind, NotificationStatus
from backend.app.models.parcel import Parcel
from backend.app.models.driver import Driver

logger = logging.getLogger(__name__)


class EmailTransport:
    """Delivers a single plain-text email."""

    async def send(self, to: str, subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpEmailTransport(EmailTransport):
    """SMTP delivery; the blocking smtplib session runs in a worker thread."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None
    ):
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_username
        self.password = password or settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.mail_from

    async def send(self, to: str, subject: str, body: str) -> None:
        if not self.host:
            raise NotificationError("SMTP host is not configured")
        await asyncio.to_thread(self._send_sync, to, subject, body)

    def _send_sync(self, to: str, subject: str, body: str) -> None:
        message = MIMEMultipart()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(self.host, self.port, timeout=settings.notification_timeout_seconds) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, [to], message.as_string())


class NotificationDispatcher:
    """Parcel lifecycle emails."""

    def __init__(self, session_factory: async_sessionmaker, transport: EmailTransport):
        self.session_factory = session_factory
        self.transport = transport

    async def send_parcel_registered_notification(self, parcel: Parcel) -> None:
        await self._deliver(
            NotificationKind.PARCEL_REGISTERED,
            parcel.sender_email,
            f"Parcel {parcel.tracking_id} registered",
            f"Hello {parcel.sender_name},\n\n"
            f"Your parcel to {parcel.receiver_name} ({parcel.from_location} → {parcel.to_location}) "
            f"has been registered with tracking ID {parcel.tracking_id}.\n"
            f"Price: KSH {parcel.price}.",
            parcel_id=parcel.id,
        )
        await self._deliver(
            NotificationKind.PARCEL_REGISTERED,
            parcel.receiver_email,
            f"A parcel is on its way to you ({parcel.tracking_id})",
            f"Hello {parcel.receiver_name},\n\n"
            f"{parcel.sender_name} has sent you a parcel from {parcel.from_location}. "
            f"Track it with ID {parcel.tracking_id}.",
            parcel_id=parcel.id,
        )

    async def send_assignment_notification(self, driver: Driver, parcel: Parcel) -> None:
        await self._deliver(
            NotificationKind.DRIVER_ASSIGNED,
            driver.email,
            f"New parcel assigned: {parcel.tracking_id}",
            f"Hello {driver.name},\n\n"
            f"You have been assigned parcel {parcel.tracking_id}.\n"
            f"Pickup: {parcel.from_location}\nDrop-off: {parcel.to_location}\n"
            f"Receiver: {parcel.receiver_name}",
            parcel_id=parcel.id,
        )

    async def send_pickup_notification(self, parcel: Parcel, driver_name: Optional[str] = None) -> None:
        by_driver = f" by {driver_name}" if driver_name else ""
        for recipient, name in ((parcel.sender_email, parcel.sender_name), (settings.admin_email, "Admin")):
            await self._deliver(
                NotificationKind.PARCEL_PICKED_UP,
                recipient,
                f"Parcel {parcel.tracking_id} picked up",
                f"Hello {name},\n\n"
                f"Parcel {parcel.tracking_id} was picked up{by_driver} at {parcel.from_location}.",
                parcel_id=parcel.id,
            )

    async def send_delivery_notification(self, parcel: Parcel, driver_name: Optional[str] = None) -> None:
        by_driver = f" by {driver_name}" if driver_name else ""
        delivered_at = (parcel.delivered_at or datetime.utcnow()).strftime("%Y-%m-%d %H:%M")
        await self._deliver(
            NotificationKind.READY_FOR_COLLECTION,
            parcel.receiver_email,
            f"Parcel {parcel.tracking_id} is ready for collection",
            f"Hello {parcel.receiver_name},\n\n"
            f"Your parcel {parcel.tracking_id} has arrived at {parcel.to_location}{by_driver}.\n"
            "Please collect your parcel at the designated pickup location.",
            parcel_id=parcel.id,
        )
        await self._deliver(
            NotificationKind.PARCEL_DELIVERED,
            parcel.sender_email,
            f"Parcel {parcel.tracking_id} delivered",
            f"Hello {parcel.sender_name},\n\n"
            f"Your parcel to {parcel.receiver_name} was delivered to {parcel.to_location} "
            f"on {delivered_at}.",
            parcel_id=parcel.id,
        )

    async def send_location_update_notification(self, parcel: Parcel, location_name: str, progress: str) -> None:
        await self._deliver(
            NotificationKind.LOCATION_UPDATE,
            parcel.receiver_email,
            f"Parcel {parcel.tracking_id} location update",
            f"Hello {parcel.receiver_name},\n\n"
            f"Your parcel {parcel.tracking_id} is now at {location_name}.\n{progress}",
            parcel_id=parcel.id,
        )

    async def _deliver(
        self,
        kind: NotificationKind,
        recipient: str,
        subject: str,
        body: str,
        parcel_id: Optional[int] = None
    ) -> None:
        try:
            await self.transport.send(recipient, subject, body)
        except Exception as e:
            logger.warning("Email %s to %s failed: %s", kind.value, recipient, e)
            await self._record(kind, recipient, subject, parcel_id, NotificationStatus.FAILED, str(e))
            raise NotificationError(f"Failed to send {kind.value} email to {recipient}: {e}")

        await self._record(kind, recipient, subject, parcel_id, NotificationStatus.SENT)

    async def _record(
        self,
        kind: NotificationKind,
        recipient: str,
        subject: str,
        parcel_id: Optional[int],
        status: NotificationStatus,
        error_message: Optional[str] = None
    ) -> NotificationLog:
        entry = NotificationLog(
            parcel_id=parcel_id,
            recipient_email=recipient,
            kind=kind,
            subject=subject,
            status=status,
            error_message=error_message,
        )
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()
        return entry


async def get_notification_logs(
    db: AsyncSession,
    parcel_id: Optional[int] = None,
    status: Optional[NotificationStatus] = None,
    limit: int = 100
) -> List[NotificationLog]:
    """
    Retrieve notification attempts, most recent first.
    """
    query = select(NotificationLog).order_by(desc(NotificationLog.created_at), desc(NotificationLog.id))

    if parcel_id:
        query = query.where(NotificationLog.parcel_id == parcel_id)

    if status:
        query = query.where(NotificationLog.status == status)

    result = await db.execute(query.limit(limit))
    return result.scalars().all()
