"""Booking service: validates booking requests and delegates slot claims to the registry."""

import logging
from typing import List

from prometheus_client import Counter

from . import errors, schemas
from .models import Booking
from .slots import SlotRegistry
from .utils import sanitize_text

logger = logging.getLogger(__name__)

BOOKINGS_CREATED_COUNT = Counter("booking_bookings_created_total", "Bookings created")
SLOT_CONFLICT_COUNT = Counter("booking_slot_conflicts_total", "Booking attempts rejected because the slot was taken")


class BookingService:
    """
    Sequencing for a claim: shape (already enforced by `schemas.BookingCreate`)
    -> counselor exists -> sanitize reason -> SlotRegistry.claim_slot.
    """

    def __init__(self, registry: SlotRegistry):
        self.registry = registry

    def _require_counselor(self, counselor_id: int):
        counselor = self.registry.get_counselor(counselor_id)
        if counselor is None:
            raise errors.CounselorNotFound()
        return counselor

    def list_counselors(self):
        return self.registry.list_counselors()

    def availability(self, counselor_id: int) -> List[dict]:
        self._require_counselor(counselor_id)
        return self.registry.list_availability(counselor_id)

    def create_booking(self, user_id: int, booking_in: schemas.BookingCreate) -> Booking:
        self._require_counselor(booking_in.counselor_id)
        reason = sanitize_text(booking_in.reason)

        logger.info(
            f"User {user_id} claiming counselor {booking_in.counselor_id} on {booking_in.date} at {booking_in.time_slot}"
        )
        try:
            booking = self.registry.claim_slot(
                user_id=user_id,
                counselor_id=booking_in.counselor_id,
                booking_date=booking_in.date,
                time_slot=booking_in.time_slot,
                reason=reason,
            )
        except errors.SlotTaken:
            SLOT_CONFLICT_COUNT.inc()
            raise

        BOOKINGS_CREATED_COUNT.inc()
        return booking

    def list_for_user(self, user_id: int) -> List[schemas.BookingResponse]:
        return [
            schemas.BookingResponse(
                id=booking.id,
                counselor_id=booking.counselor_id,
                booking_date=booking.booking_date,
                time_slot=booking.time_slot,
                reason=booking.reason,
                created_at=booking.created_at,
                counselor_name=booking.counselor.name,
                counselor_title=booking.counselor.title,
                avatar_color=booking.counselor.avatar_color,
            )
            for booking in self.registry.list_by_user(user_id)
        ]

    def cancel(self, booking_id: int, user_id: int) -> None:
        self.registry.release_slot(booking_id, user_id)
