"""Slot registry: persistence of booked (counselor, date, time slot) triples."""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import errors
from .models import Booking, Counselor

logger = logging.getLogger(__name__)


class SlotRegistry:
    """
    Reads and writes bookings.

    The UNIQUE(counselor_id, booking_date, time_slot) constraint is the only
    thing that decides who gets a slot. `find_booking` is an advisory pre-check
    for a friendlier error; `claim_slot` always attempts the insert.
    """

    def __init__(self, db: Session):
        self.db = db

    # --- Counselors ---

    def list_counselors(self) -> List[Counselor]:
        return self.db.query(Counselor).order_by(Counselor.name.asc()).all()

    def get_counselor(self, counselor_id: int) -> Optional[Counselor]:
        return self.db.query(Counselor).filter(Counselor.id == counselor_id).first()

    # --- Slots ---

    def list_availability(self, counselor_id: int) -> List[dict]:
        """Booked slots of a counselor. Callers index them by (date, timeSlot), order is irrelevant."""
        rows = (
            self.db.query(Booking.booking_date, Booking.time_slot)
            .filter(Booking.counselor_id == counselor_id)
            .all()
        )
        return [{"date": booking_date, "timeSlot": time_slot} for booking_date, time_slot in rows]

    def find_booking(self, counselor_id: int, booking_date: str, time_slot: str) -> Optional[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.counselor_id == counselor_id,
                Booking.booking_date == booking_date,
                Booking.time_slot == time_slot,
            )
            .first()
        )

    def claim_slot(
        self,
        user_id: int,
        counselor_id: int,
        booking_date: str,
        time_slot: str,
        reason: Optional[str] = None,
    ) -> Booking:
        if self.find_booking(counselor_id, booking_date, time_slot) is not None:
            raise errors.SlotTaken()

        new_booking = Booking(
            user_id=user_id,
            counselor_id=counselor_id,
            booking_date=booking_date,
            time_slot=time_slot,
            reason=reason,
        )
        try:
            self.db.add(new_booking)
            self.db.commit()
            self.db.refresh(new_booking)
        except IntegrityError:
            self.db.rollback()
            # A foreign key failure means the counselor disappeared; anything else is the slot constraint.
            if self.get_counselor(counselor_id) is None:
                raise errors.CounselorNotFound()
            logger.warning(
                f"Slot conflict on insert: counselor {counselor_id}, {booking_date} {time_slot} (user {user_id})."
            )
            raise errors.SlotTaken("This time slot was just booked by another user. Please select another time.")

        logger.info(f"Booking ID {new_booking.id} created for user_id: {user_id}")
        return new_booking

    def release_slot(self, booking_id: int, user_id: int) -> None:
        """
        Deletes a booking owned by `user_id` in a single statement.

        Zero affected rows raises BookingNotFound, whether the booking is missing
        or belongs to somebody else.
        """
        deleted = (
            self.db.query(Booking)
            .filter(Booking.id == booking_id, Booking.user_id == user_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted == 0:
            raise errors.BookingNotFound()
        logger.info(f"Booking ID {booking_id} cancelled by user_id: {user_id}")

    def list_by_user(self, user_id: int) -> List[Booking]:
        return (
            self.db.query(Booking)
            .options(joinedload(Booking.counselor))
            .filter(Booking.user_id == user_id)
            .order_by(Booking.booking_date.asc(), Booking.time_slot.asc())
            .all()
        )
