# barbershop/services/booking.py
"""
Reservation state machine.

    pending -> confirmed -> in_progress -> completed
    pending | confirmed -> cancelled
    walk-in: created directly as completed

Each operation writes the reservation first and then the slot, both inside one
session transaction. Both writes are compare-and-set updates, so a request that
lost a race to another request or to the payment timeout job changes nothing.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from barbershop.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from barbershop.models import (
    Barber,
    Package,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Slot,
    SlotStatus,
)
from barbershop.stores import ReservationStore, ScheduleStore, next_code

logger = logging.getLogger(__name__)

CANCELLABLE = (ReservationStatus.pending, ReservationStatus.confirmed)
COMPLETABLE = (ReservationStatus.confirmed, ReservationStatus.in_progress)


class BookingService:
    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        self.session = session
        self.slots = ScheduleStore(session)
        self.reservations = ReservationStore(session)
        self.clock = clock

    # -- creation -----------------------------------------------------------

    def create_reservation(
        self,
        package_id: int,
        barber_id: int,
        slot_id: int,
        customer_name: str,
        customer_phone: str,
        customer_email: Optional[str] = None,
        customer_id: Optional[int] = None,
        created_by: Optional[int] = None,
        notes: str = "",
        payment_method: Optional[PaymentMethod] = None,
    ) -> Reservation:
        """Book a slot for a customer. The reservation starts as pending."""
        if not customer_email:
            raise ValidationError("Customer email is required")

        now = self.clock()
        package, slot = self._bookable(package_id, barber_id, slot_id)
        if slot.scheduled_time <= now:
            raise InvalidStateError("Cannot book a slot in the past")

        reservation = Reservation(
            customer_id=customer_id,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone.strip(),
            customer_email=customer_email.strip().lower(),
            created_by=created_by if created_by is not None else customer_id,
            package_id=package.id,
            barber_id=barber_id,
            slot_id=slot.id,
            total_price=package.price,
            notes=notes or "",
            status=ReservationStatus.pending.value,
            payment_method=(payment_method or PaymentMethod.bank_transfer).value,
            created_at=now,
            updated_at=now,
        )
        reservation = self._claim(reservation, slot, status=SlotStatus.booked.value)
        logger.info("Reservation %s created for slot %s (pending)", reservation.code, slot.id)
        return reservation

    def create_walk_in(
        self,
        package_id: int,
        barber_id: int,
        slot_id: int,
        customer_name: str,
        customer_phone: str,
        cashier_id: int,
        customer_email: Optional[str] = None,
        notes: str = "",
        payment_method: PaymentMethod = PaymentMethod.cash,
    ) -> Reservation:
        """
        Book and settle a walk-in at the counter. Payment happens on the spot,
        so the reservation and the slot go straight to completed.
        """
        now = self.clock()
        package, slot = self._bookable(package_id, barber_id, slot_id)

        reservation = Reservation(
            customer_id=None,
            customer_name=customer_name.strip(),
            customer_phone=customer_phone.strip(),
            customer_email=customer_email.strip().lower() if customer_email else None,
            created_by=cashier_id,
            package_id=package.id,
            barber_id=barber_id,
            slot_id=slot.id,
            total_price=package.price,
            notes=notes or "",
            status=ReservationStatus.completed.value,
            payment_method=payment_method.value,
            is_walk_in=True,
            confirmed_by=cashier_id,
            confirmed_at=now,
            completed_by=cashier_id,
            completed_at=now,
            created_at=now,
            updated_at=now,
        )
        reservation = self._claim(
            reservation, slot, status=SlotStatus.completed.value, completed_at=now
        )
        logger.info("Walk-in reservation %s completed on slot %s", reservation.code, slot.id)
        return reservation

    def _bookable(self, package_id: int, barber_id: int, slot_id: int):
        package = self.session.get(Package, package_id)
        if package is None:
            raise NotFoundError("Package not found")
        if not package.is_active:
            raise InvalidStateError("Package is not active")

        barber = self.session.get(Barber, barber_id)
        if barber is None:
            raise NotFoundError("Barber not found")
        if not barber.is_active:
            raise InvalidStateError("Barber is not active")

        slot = self.slots.get(slot_id)
        if slot is None:
            raise NotFoundError("Schedule not found")
        if slot.barber_id != barber_id:
            raise ValidationError("Schedule does not belong to selected barber")
        if slot.status != SlotStatus.available.value:
            raise ConflictError("Selected time slot is no longer available")

        return package, slot

    def _claim(self, reservation: Reservation, slot: Slot, **slot_values) -> Reservation:
        reservation.code = next_code(self.session, "reservation")
        self.session.add(reservation)
        self.session.flush()

        claimed = self.slots.compare_and_set(
            slot.id,
            [SlotStatus.available],
            reservation_id=reservation.id,
            **slot_values,
        )
        if not claimed:
            # someone else booked it between our check and our write
            self.session.rollback()
            logger.info("Lost the claim on slot %s", slot.id)
            raise ConflictError("Selected time slot is no longer available")

        self.session.commit()
        self.session.refresh(reservation)
        return reservation

    # -- transitions --------------------------------------------------------

    def confirm(self, reservation_id: int, actor_id: Optional[int] = None) -> Reservation:
        now = self.clock()
        self._transition(
            reservation_id,
            "confirm",
            [ReservationStatus.pending],
            status=ReservationStatus.confirmed.value,
            confirmed_by=actor_id,
            confirmed_at=now,
        )
        self.session.commit()
        logger.info("Reservation %s confirmed by %s", reservation_id, actor_id)
        return self._reload(reservation_id)

    def start(self, reservation_id: int, actor_id: Optional[int] = None) -> Reservation:
        self._transition(
            reservation_id,
            "start",
            [ReservationStatus.confirmed],
            status=ReservationStatus.in_progress.value,
        )
        self.session.commit()
        logger.info("Reservation %s in progress (by %s)", reservation_id, actor_id)
        return self._reload(reservation_id)

    def complete(
        self,
        reservation_id: int,
        actor_id: Optional[int] = None,
        payment_method: Optional[PaymentMethod] = None,
        service_notes: Optional[str] = None,
    ) -> Reservation:
        now = self.clock()
        values = dict(
            status=ReservationStatus.completed.value,
            completed_by=actor_id,
            completed_at=now,
        )
        if payment_method is not None:
            values["payment_method"] = payment_method.value
        if service_notes is not None:
            values["service_notes"] = service_notes

        reservation = self._transition(reservation_id, "complete", COMPLETABLE, **values)

        moved = self.slots.compare_and_set(
            reservation.slot_id,
            [SlotStatus.booked],
            Slot.reservation_id == reservation.id,
            status=SlotStatus.completed.value,
            completed_at=now,
        )
        if not moved:
            logger.warning(
                "Slot %s was not booked by reservation %s, left unchanged",
                reservation.slot_id, reservation.id,
            )
        self.session.commit()
        logger.info("Reservation %s completed by %s", reservation_id, actor_id)
        return self._reload(reservation_id)

    def cancel(
        self,
        reservation_id: int,
        actor_id: Optional[int] = None,
        reason: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> Reservation:
        """
        Cancel a pending or confirmed reservation and give its slot back.

        When ``customer_id`` is given the reservation must belong to that customer.
        """
        if customer_id is not None:
            reservation = self.reservations.get(reservation_id)
            if reservation is None or reservation.customer_id != customer_id:
                raise NotFoundError("Reservation not found")

        self._cancel(reservation_id, actor_id, reason)
        self.session.commit()
        return self._reload(reservation_id)

    def _cancel(self, reservation_id: int, actor_id: Optional[int], reason: Optional[str], *conditions) -> Reservation:
        reservation = self._transition(
            reservation_id,
            "cancel",
            CANCELLABLE,
            *conditions,
            status=ReservationStatus.cancelled.value,
            cancelled_by=actor_id,
            cancelled_at=self.clock(),
            cancellation_reason=reason,
        )
        if self.slots.release(reservation.slot_id, reservation.id):
            logger.info("Reservation %s cancelled, slot %s released", reservation.code, reservation.slot_id)
        else:
            # slot already moved on (completed, toggled or released)
            logger.info("Reservation %s cancelled, slot %s left as is", reservation.code, reservation.slot_id)

        # a proof still waiting for review must not outlive its reservation
        if reservation.payment_id is not None and self._settle_payment(
            reservation.payment_id, PaymentStatus.rejected, actor_id, reason or "Reservation cancelled"
        ):
            logger.info("Payment %s rejected with cancelled reservation %s", reservation.payment_id, reservation.code)
        return reservation

    def _transition(self, reservation_id: int, action: str, expected, *conditions, **values) -> Reservation:
        changed = self.reservations.compare_and_set(reservation_id, expected, *conditions, **values)
        if not changed:
            self.session.rollback()
            reservation = self.reservations.get(reservation_id)
            if reservation is None:
                raise NotFoundError("Reservation not found")
            raise InvalidStateError(f"Cannot {action} reservation with status '{reservation.status}'")

        reservation = self.reservations.get(reservation_id)
        self.session.refresh(reservation)
        return reservation

    def _reload(self, reservation_id: int) -> Reservation:
        reservation = self.reservations.get(reservation_id)
        self.session.refresh(reservation)
        return reservation

    # -- payments -----------------------------------------------------------

    def attach_payment(
        self,
        reservation_id: int,
        user_id: int,
        method: PaymentMethod,
        proof_url: str,
        provider: Optional[str] = None,
        account_name: Optional[str] = None,
        account_number: Optional[str] = None,
    ) -> Payment:
        """
        Record a payment proof for the customer's own pending reservation.

        Only one payment per reservation. Once attached the reservation is no
        longer picked up by the payment timeout job.
        """
        if method == PaymentMethod.cash:
            raise ValidationError("Payment proof is only accepted for bank_transfer or e_wallet")

        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found")
        if reservation.customer_id != user_id:
            raise ForbiddenError("You can only upload payment for your own reservations")
        if reservation.status != ReservationStatus.pending.value:
            raise InvalidStateError(
                f"Cannot upload payment proof. Reservation status: {reservation.status}"
            )
        if reservation.payment_id is not None:
            raise ConflictError("Payment proof has already been uploaded for this reservation")

        payment = Payment(
            code=next_code(self.session, "payment"),
            reservation_id=reservation.id,
            user_id=user_id,
            amount=reservation.total_price,
            method=method.value,
            provider=provider,
            account_name=account_name,
            account_number=account_number,
            proof_url=proof_url,
            created_at=self.clock(),
        )
        self.session.add(payment)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError("Payment proof has already been uploaded for this reservation")

        self._transition(
            reservation_id,
            "attach payment to",
            [ReservationStatus.pending],
            col(Reservation.payment_id).is_(None),
            payment_id=payment.id,
            payment_method=method.value,
        )
        self.session.commit()
        self.session.refresh(payment)
        logger.info("Payment %s attached to reservation %s", payment.code, reservation.code)
        return payment

    def verify_payment(
        self,
        payment_id: int,
        status: PaymentStatus,
        actor_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> Payment:
        """Verified confirms the reservation; rejected cancels it and frees the slot."""
        if status not in (PaymentStatus.verified, PaymentStatus.rejected):
            raise ValidationError("Invalid status. Must be 'verified' or 'rejected'")

        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        now = self.clock()
        if not self._settle_payment(payment_id, status, actor_id, note):
            self.session.rollback()
            raise InvalidStateError(f"Payment has already been {payment.status}")

        if status == PaymentStatus.verified:
            self._transition(
                payment.reservation_id,
                "confirm",
                [ReservationStatus.pending],
                status=ReservationStatus.confirmed.value,
                confirmed_by=actor_id,
                confirmed_at=now,
            )
        else:
            self._cancel(payment.reservation_id, actor_id, note or "Payment rejected by cashier")

        self.session.commit()
        self.session.refresh(payment)
        logger.info("Payment %s %s by %s", payment.code, status.value, actor_id)
        return payment

    def payment_for(self, reservation_id: int) -> Optional[Payment]:
        return self.session.exec(
            select(Payment).where(Payment.reservation_id == reservation_id)
        ).first()

    def _settle_payment(self, payment_id: int, status: PaymentStatus, actor_id: Optional[int], note: Optional[str]) -> bool:
        """Move a payment out of pending; False if someone else already did."""
        result = self.session.exec(
            update(Payment)
            .where(Payment.id == payment_id)
            .where(Payment.status == PaymentStatus.pending.value)
            .values(
                status=status.value,
                verification_note=note or "",
                verified_by=actor_id,
                verified_at=self.clock(),
            )
        )
        return result.rowcount == 1
