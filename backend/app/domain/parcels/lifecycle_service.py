"""
Parcel Lifecycle Service (Domain Logic).

Creation, driver assignment, status transitions, receiver collection and
the admin dashboard.

Every status-changing operation stages the parcel update, any driver update
and the status log row on one session and commits them together. Parcels
carry a version counter: a transition computed from a stale read fails with
ConflictError instead of overwriting a concurrent change.

Geocoding and distance are critical dependencies (failure aborts the
operation). Notifications are advisory (failure is logged only).
"""

import logging
from datetime import datetime
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, func, desc, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ResourceNotFoundError, BadRequestError, ConflictError, GeocodingError, DistanceError
)
from backend.app.core.reliability import run_critical, run_advisory
from backend.app.domain.drivers.availability import reconcile_driver_availability
from backend.app.domain.parcels.pricing import calculate_parcel_price
from backend.app.domain.parcels.tracking_id import generate_unique_tracking_id
from backend.app.domain.parcels.state_machine import (
    UNASSIGN_LOCKED_STATUSES, PROCESSED_STATUSES, IN_FLIGHT_STATUSES, COMPLETED_STATUSES,
    ensure_not_terminal, ensure_general_transition_allowed, ensure_driver_present, is_completing
)
from backend.app.models.driver import Driver
from backend.app.models.driver_enums import DriverStatus
from backend.app.models.enums import UserRole
from backend.app.models.parcel import Parcel
from backend.app.models.parcel_enums import ParcelStatus
from backend.app.models.parcel_status_log import ParcelStatusLog
from backend.app.models.user import User
from backend.app.schemas.parcel import ParcelCreate
from backend.app.services.geocoding import Geocoder, DistanceProvider
from backend.app.services.notification_service import NotificationDispatcher
from backend.app.services.status_log import append_status_log, get_status_history

logger = logging.getLogger(__name__)

RESEND_EMAIL_TYPES = ("assignment", "pickup", "delivery", "location")


class ParcelLifecycleService:

    def __init__(
        self,
        db: AsyncSession,
        geocoder: Geocoder,
        distance_provider: DistanceProvider,
        notifier: NotificationDispatcher
    ):
        self.db = db
        self.geocoder = geocoder
        self.distance_provider = distance_provider
        self.notifier = notifier

    # Creation

    async def create_parcel(
        self,
        data: ParcelCreate,
        caller_user_id: Optional[int] = None,
        caller_role: Optional[str] = None
    ) -> Parcel:
        """
        Register a new parcel.

        Flow:
        1. Duplicate-submission guard (configurable)
        2. Link sender / receiver accounts by email
        3. Allocate a tracking ID
        4. Geocode both endpoints (critical)
        5. Resolve the route distance (critical) and price
        6. Persist the parcel with a PENDING status log row
        7. Email sender and receiver (advisory)

        Args:
            data: Validated creation payload
            caller_user_id: Account creating the parcel, if any
            caller_role: Role of that account; a USER caller is linked as
                sender when no account matches the sender email

        Returns:
            The persisted Parcel

        Raises:
            ConflictError: identical parcel already registered, or the
                tracking ID was taken by a concurrent creation
            GeocodingError / DistanceError: a place could not be resolved
            TrackingIdGenerationError: no tracking ID could be allocated
        """
        sender_email = str(data.sender_email).lower()
        receiver_email = str(data.receiver_email).lower()

        if settings.duplicate_parcel_guard_enabled:
            await self._ensure_not_duplicate(data, sender_email, receiver_email)

        sender_id = await self._find_user_id(sender_email)
        receiver_id = await self._find_user_id(receiver_email)
        if sender_id is None and caller_user_id and caller_role == UserRole.USER.value:
            sender_id = caller_user_id

        tracking_id, tracking_number = await generate_unique_tracking_id(self.db)

        timeout = settings.critical_call_timeout_seconds
        origin = await run_critical(
            "Geocoding pickup location", self.geocoder.geocode, data.from_location,
            timeout=timeout, error_cls=GeocodingError
        )
        destination = await run_critical(
            "Geocoding destination", self.geocoder.geocode, data.to_location,
            timeout=timeout, error_cls=GeocodingError
        )
        distance = await run_critical(
            "Distance calculation", self.distance_provider.distance_km,
            data.from_location, data.to_location, origin, destination,
            timeout=timeout, error_cls=DistanceError
        )

        price = calculate_parcel_price(data.type, data.weight, distance, data.mode)

        now = datetime.utcnow()
        parcel = Parcel(
            tracking_id=tracking_id,
            tracking_number=tracking_number,
            sender_name=data.sender_name,
            sender_email=sender_email,
            receiver_name=data.receiver_name,
            receiver_email=receiver_email,
            sender_id=sender_id,
            receiver_id=receiver_id,
            from_location=data.from_location,
            to_location=data.to_location,
            from_lat=origin.lat,
            from_lng=origin.lng,
            destination_lat=destination.lat,
            destination_lng=destination.lng,
            distance=distance,
            type=data.type,
            weight=data.weight,
            mode=data.mode,
            description=data.description,
            price=price,
            status=ParcelStatus.PENDING,
            sent_at=now,
            updated_at=now,
        )
        self.db.add(parcel)

        try:
            await self.db.flush()
            append_status_log(self.db, parcel.id, ParcelStatus.PENDING, now)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Parcel insert rejected for %s: %s", tracking_id, e)
            raise ConflictError(
                "Tracking ID was taken by a concurrent request, please retry",
                details={"tracking_id": tracking_id}
            )

        await self.db.refresh(parcel)
        logger.info("Parcel %s created (%.0f km, price %s)", parcel.tracking_id, distance, price)

        await run_advisory(
            "Parcel registered email", self.notifier.send_parcel_registered_notification, parcel,
            timeout=settings.advisory_call_timeout_seconds
        )
        return parcel

    # Driver assignment

    async def assign_driver(self, parcel_id: int, driver_id: int) -> Parcel:
        """
        Assign an available driver to a pending parcel.

        The driver moves to ON_DELIVERY and stops receiving assignments in the
        same commit. The driver is emailed afterwards (advisory).

        Raises:
            ResourceNotFoundError: parcel or driver absent (archived drivers
                count as absent)
            ConflictError: parcel is not PENDING
            BadRequestError: driver is not available for assignments
        """
        parcel = await self._get_parcel_or_404(parcel_id)
        driver = await self._get_driver_or_404(driver_id)

        if parcel.status != ParcelStatus.PENDING:
            raise ConflictError(
                f"Parcel must be PENDING to assign a driver, current status is {parcel.status.value}",
                details={"current_status": parcel.status.value}
            )

        if not driver.is_assignable:
            raise BadRequestError(
                "Driver is not available for assignments",
                details={"driver_id": driver.id, "driver_status": driver.status.value}
            )

        now = datetime.utcnow()
        parcel.driver_id = driver.id
        parcel.status = ParcelStatus.ASSIGNED
        parcel.updated_at = now
        driver.status = DriverStatus.ON_DELIVERY
        driver.can_receive_assignments = False
        driver.updated_at = now
        append_status_log(self.db, parcel.id, ParcelStatus.ASSIGNED, now)

        await self._commit(parcel)
        await self.db.refresh(parcel)
        logger.info("Parcel %s assigned to driver %s", parcel.tracking_id, driver.id)

        await run_advisory(
            "Assignment email", self.notifier.send_assignment_notification, driver, parcel,
            timeout=settings.advisory_call_timeout_seconds
        )
        return parcel

    async def unassign_driver(self, parcel_id: int) -> Parcel:
        """
        Take the driver off a parcel that has not been picked up yet.

        The parcel returns to PENDING and the driver to AVAILABLE in one commit.

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: parcel has no driver
            ConflictError: parcel already handled by the driver, or cancelled
        """
        parcel = await self._get_parcel_or_404(parcel_id)

        if parcel.driver_id is None:
            raise BadRequestError("Parcel has no assigned driver")

        if parcel.status in UNASSIGN_LOCKED_STATUSES or parcel.status == ParcelStatus.CANCELLED:
            raise ConflictError(
                f"Cannot unassign driver from a parcel that is {parcel.status.value}",
                details={"current_status": parcel.status.value}
            )

        return await self._return_to_pending(parcel)

    async def _return_to_pending(self, parcel: Parcel) -> Parcel:
        now = datetime.utcnow()
        driver = await self.db.get(Driver, parcel.driver_id)
        if driver and driver.deleted_at is None:
            driver.status = DriverStatus.AVAILABLE
            driver.can_receive_assignments = True
            driver.updated_at = now

        previous_driver_id = parcel.driver_id
        parcel.driver_id = None
        parcel.status = ParcelStatus.PENDING
        parcel.updated_at = now
        append_status_log(self.db, parcel.id, ParcelStatus.PENDING, now)

        await self._commit(parcel)
        await self.db.refresh(parcel)
        logger.info("Driver %s unassigned from parcel %s", previous_driver_id, parcel.tracking_id)
        return parcel

    # Status transitions

    async def update_parcel_status(self, parcel_id: int, new_status: ParcelStatus, driver_id: int) -> Parcel:
        """
        Status update by the assigned driver.

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: the requester is not the assigned driver, or asked for PENDING
            ConflictError: parcel is cancelled or already collected
        """
        parcel = await self._get_parcel_or_404(parcel_id)

        if parcel.driver_id is None or parcel.driver_id != driver_id:
            raise BadRequestError("You are not assigned to this parcel")

        ensure_not_terminal(parcel.status)

        if new_status == ParcelStatus.PENDING:
            raise BadRequestError("Only an admin can return a parcel to PENDING")

        return await self._apply_transition(parcel, new_status)

    async def update_parcel_status_general(self, parcel_id: int, new_status: ParcelStatus) -> Parcel:
        """
        Status update by an admin.

        A DELIVERED parcel may only move to COLLECTED_BY_RECEIVER. Completing
        transitions release the driver when it was their last active parcel.
        Moving back to PENDING unassigns the driver. Driver-handled statuses
        need an assigned driver.

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: delivered parcel moved anywhere but collected, or a
                driver-handled status requested for a parcel without a driver
            ConflictError: parcel is cancelled or already collected
        """
        parcel = await self._get_parcel_or_404(parcel_id)
        ensure_general_transition_allowed(parcel.status, new_status)

        if new_status == ParcelStatus.PENDING:
            return await self.unassign_driver(parcel_id)

        ensure_driver_present(new_status, parcel.driver_id)
        return await self._apply_transition(parcel, new_status)

    async def mark_parcel_collected_by_receiver(self, parcel_id: int, user_id: int) -> Parcel:
        """
        Receiver confirms collection of a delivered parcel.

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: caller is not the linked receiver, or the parcel
                is not DELIVERED
        """
        parcel = await self._get_parcel_or_404(parcel_id)

        if parcel.receiver_id != user_id:
            raise BadRequestError("Only the receiver can mark this parcel as collected")

        if parcel.status != ParcelStatus.DELIVERED:
            raise BadRequestError(
                "Parcel must be DELIVERED before it can be collected",
                details={"current_status": parcel.status.value}
            )

        return await self._apply_transition(parcel, ParcelStatus.COLLECTED_BY_RECEIVER)

    async def _apply_transition(self, parcel: Parcel, new_status: ParcelStatus) -> Parcel:
        now = datetime.utcnow()
        parcel.status = new_status
        parcel.updated_at = now

        if new_status == ParcelStatus.PICKED_UP_BY_DRIVER:
            parcel.picked_at = now
        elif new_status == ParcelStatus.DELIVERED:
            parcel.delivered_at = now

        if is_completing(new_status):
            await reconcile_driver_availability(self.db, parcel.driver_id, exclude_parcel_id=parcel.id)

        append_status_log(self.db, parcel.id, new_status, now)

        await self._commit(parcel)
        await self.db.refresh(parcel)
        logger.info("Parcel %s moved to %s", parcel.tracking_id, new_status.value)

        if new_status == ParcelStatus.DELIVERED:
            driver_name = await self._driver_name(parcel.driver_id)
            await run_advisory(
                "Delivery email", self.notifier.send_delivery_notification, parcel, driver_name,
                timeout=settings.advisory_call_timeout_seconds
            )
        return parcel

    # Reads

    async def get_parcel(self, parcel_id: int) -> Parcel:
        return await self._get_parcel_or_404(parcel_id)

    async def get_parcel_by_tracking_id(self, tracking_id: str) -> Parcel:
        result = await self.db.execute(
            select(Parcel).where(Parcel.tracking_id == tracking_id.strip().upper())
        )
        parcel = result.scalar_one_or_none()
        if not parcel:
            raise ResourceNotFoundError("Parcel", tracking_id)
        return parcel

    async def get_status_history(self, parcel_id: int) -> List[ParcelStatusLog]:
        await self._get_parcel_or_404(parcel_id)
        return await get_status_history(self.db, parcel_id)

    async def get_driver(self, driver_id: Optional[int]) -> Optional[Driver]:
        if driver_id is None:
            return None
        return await self.db.get(Driver, driver_id)

    async def list_parcels(
        self,
        page: int = 1,
        page_size: int = 50,
        status: Optional[ParcelStatus] = None
    ) -> Tuple[List[Parcel], int]:
        count_query = select(func.count(Parcel.id))
        query = select(Parcel)
        if status:
            count_query = count_query.where(Parcel.status == status)
            query = query.where(Parcel.status == status)

        total = (await self.db.execute(count_query)).scalar() or 0

        offset = (page - 1) * page_size
        result = await self.db.execute(
            query.order_by(desc(Parcel.sent_at), desc(Parcel.id)).offset(offset).limit(page_size)
        )
        return result.scalars().all(), total

    async def list_sent_parcels(self, user_id: int) -> List[Parcel]:
        """Parcels sent by the user, matched by account link or by email."""
        user = await self._get_user_or_404(user_id)
        result = await self.db.execute(
            select(Parcel)
            .where(or_(Parcel.sender_id == user.id, Parcel.sender_email == user.email.lower()))
            .order_by(desc(Parcel.sent_at), desc(Parcel.id))
        )
        return result.scalars().all()

    async def list_received_parcels(self, user_id: int) -> List[Parcel]:
        """Parcels addressed to the user, matched by account link or by email."""
        user = await self._get_user_or_404(user_id)
        result = await self.db.execute(
            select(Parcel)
            .where(or_(Parcel.receiver_id == user.id, Parcel.receiver_email == user.email.lower()))
            .order_by(desc(Parcel.sent_at), desc(Parcel.id))
        )
        return result.scalars().all()

    async def get_user_parcel_stats(self, user_id: int) -> Dict[str, Dict[str, int]]:
        user = await self._get_user_or_404(user_id)
        email = user.email.lower()

        sent = await self.db.execute(
            select(Parcel.status, func.count(Parcel.id))
            .where(or_(Parcel.sender_id == user.id, Parcel.sender_email == email))
            .group_by(Parcel.status)
        )
        received = await self.db.execute(
            select(Parcel.status, func.count(Parcel.id))
            .where(or_(Parcel.receiver_id == user.id, Parcel.receiver_email == email))
            .group_by(Parcel.status)
        )
        return {
            "sent": {row[0].value: row[1] for row in sent.all()},
            "received": {row[0].value: row[1] for row in received.all()},
        }

    async def get_dashboard_metrics(self) -> dict:
        """
        Aggregate admin dashboard figures.

        Read-only. The queries share one session, so they run one after another.
        """
        total_earnings = await self.db.execute(
            select(func.coalesce(func.sum(Parcel.price), 0))
            .where(Parcel.status.in_(PROCESSED_STATUSES))
        )
        total_users = await self.db.execute(select(func.count(User.id)))
        active_drivers = await self.db.execute(
            select(func.count(Driver.id)).where(Driver.deleted_at.is_(None))
        )
        in_transit = await self.db.execute(
            select(func.count(Parcel.id)).where(Parcel.status.in_(IN_FLIGHT_STATUSES))
        )
        delivered = await self.db.execute(
            select(func.count(Parcel.id)).where(Parcel.status.in_(COMPLETED_STATUSES))
        )
        recent = await self.db.execute(
            select(Parcel).order_by(desc(Parcel.updated_at), desc(Parcel.id)).limit(5)
        )

        return {
            "total_earnings": int(total_earnings.scalar() or 0),
            "total_users": total_users.scalar() or 0,
            "active_drivers": active_drivers.scalar() or 0,
            "parcels_in_transit": in_transit.scalar() or 0,
            "parcels_delivered": delivered.scalar() or 0,
            "recent_parcels": [
                {
                    "tracking_id": p.tracking_id,
                    "sender_name": p.sender_name,
                    "receiver_name": p.receiver_name,
                    "status": p.status,
                    "price": p.price,
                    "updated_at": p.updated_at,
                }
                for p in recent.scalars().all()
            ],
        }

    # Notifications

    async def resend_notification(self, parcel_id: int, email_type: str) -> bool:
        """
        Re-send one of the parcel lifecycle emails on admin request.

        Returns:
            True if the email went out, False if sending failed (logged)

        Raises:
            ResourceNotFoundError: parcel absent
            BadRequestError: unknown email type, or the parcel has no driver
                for a driver-related email
        """
        if email_type not in RESEND_EMAIL_TYPES:
            raise BadRequestError(
                f"Unknown email type '{email_type}'",
                details={"allowed": list(RESEND_EMAIL_TYPES)}
            )

        parcel = await self._get_parcel_or_404(parcel_id)
        driver = await self.get_driver(parcel.driver_id)
        timeout = settings.advisory_call_timeout_seconds

        if email_type == "assignment":
            if not driver:
                raise BadRequestError("Parcel has no assigned driver")
            return await run_advisory(
                "Assignment email", self.notifier.send_assignment_notification, driver, parcel,
                timeout=timeout
            )

        driver_name = driver.name if driver else None
        if email_type == "pickup":
            return await run_advisory(
                "Pickup email", self.notifier.send_pickup_notification, parcel, driver_name,
                timeout=timeout
            )
        if email_type == "delivery":
            return await run_advisory(
                "Delivery email", self.notifier.send_delivery_notification, parcel, driver_name,
                timeout=timeout
            )

        if not driver or driver.current_lat is None or driver.current_lng is None:
            raise BadRequestError("Driver has not reported a location yet")
        return await run_advisory(
            "Location update email", self.notifier.send_location_update_notification, parcel,
            f"{driver.current_lat:.5f}, {driver.current_lng:.5f}",
            f"Current status: {parcel.status.value}",
            timeout=timeout
        )

    # Helpers

    async def _commit(self, parcel: Parcel) -> None:
        try:
            await self.db.commit()
        except StaleDataError:
            await self.db.rollback()
            logger.warning("Lost update on parcel %s", parcel.id)
            raise ConflictError(
                "Parcel was modified by another request, please retry",
                details={"parcel_id": parcel.id}
            )

    async def _ensure_not_duplicate(self, data: ParcelCreate, sender_email: str, receiver_email: str) -> None:
        conditions = [
            Parcel.sender_name == data.sender_name,
            Parcel.sender_email == sender_email,
            Parcel.receiver_name == data.receiver_name,
            Parcel.receiver_email == receiver_email,
            Parcel.from_location == data.from_location,
            Parcel.to_location == data.to_location,
            Parcel.weight == data.weight,
            Parcel.mode == data.mode,
            Parcel.type == data.type,
        ]
        if data.description is None:
            conditions.append(Parcel.description.is_(None))
        else:
            conditions.append(Parcel.description == data.description)

        result = await self.db.execute(select(Parcel.tracking_id).where(*conditions).limit(1))
        existing = result.scalar_one_or_none()
        if existing:
            raise ConflictError(
                "An identical parcel has already been registered",
                details={"tracking_id": existing}
            )

    async def _find_user_id(self, email: str) -> Optional[int]:
        result = await self.db.execute(select(User.id).where(func.lower(User.email) == email))
        return result.scalar_one_or_none()

    async def _driver_name(self, driver_id: Optional[int]) -> Optional[str]:
        driver = await self.get_driver(driver_id)
        return driver.name if driver else None

    async def _get_parcel_or_404(self, parcel_id: int) -> Parcel:
        parcel = await self.db.get(Parcel, parcel_id)
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    async def _get_driver_or_404(self, driver_id: int) -> Driver:
        driver = await self.db.get(Driver, driver_id)
        if not driver or driver.deleted_at is not None:
            raise ResourceNotFoundError("Driver", driver_id)
        return driver

    async def _get_user_or_404(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return user
