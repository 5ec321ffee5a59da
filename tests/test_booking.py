import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta

import pytest
from sqlmodel import Session, create_engine, select

from barbershop.db import init_db
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
    PaymentMethod,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Slot,
    SlotStatus,
)
from barbershop.services.booking import BookingService
from barbershop.services.scheduling import generate_slots
from barbershop.stores import ScheduleStore, next_code

MONDAY = date(2024, 1, 1)
NOW = datetime(2023, 12, 31, 10, 0)


def _slot(session, barber, label, day=MONDAY):
    return session.exec(
        select(Slot)
        .where(Slot.barber_id == barber.id)
        .where(Slot.date == day)
        .where(Slot.time_slot == label)
    ).one()


@pytest.fixture
def service(session):
    return BookingService(session, clock=lambda: NOW)


@pytest.fixture
def book(service, monday_slots, package, customer, session):
    def booking(label="11:00", **kwargs):
        slot = _slot(session, monday_slots, label)
        params = dict(
            package_id=package.id,
            barber_id=monday_slots.id,
            slot_id=slot.id,
            customer_name="Citra Lestari",
            customer_phone="081234567890",
            customer_email="citra@example.com",
            customer_id=customer.id,
        )
        params.update(kwargs)
        return service.create_reservation(**params)

    return booking


def test_happy_path(service, book, session, monday_slots, cashier):
    reservation = book("11:00")
    slot = _slot(session, monday_slots, "11:00")

    assert reservation.status == ReservationStatus.pending.value
    assert reservation.total_price == 50000
    assert reservation.code == "RES0001"
    assert slot.status == SlotStatus.booked.value
    assert slot.reservation_id == reservation.id

    confirmed = service.confirm(reservation.id, actor_id=cashier.id)
    assert confirmed.status == ReservationStatus.confirmed.value
    assert confirmed.confirmed_by == cashier.id
    assert confirmed.confirmed_at == NOW

    completed = service.complete(reservation.id, actor_id=cashier.id)
    session.refresh(slot)
    assert completed.status == ReservationStatus.completed.value
    assert completed.completed_at == NOW
    assert slot.status == SlotStatus.completed.value
    assert slot.completed_at == NOW


def test_walk_in_goes_straight_to_completed(service, session, monday_slots, make_package, cashier):
    package = make_package("Quick Trim", price=25000)
    slot = _slot(session, monday_slots, "13:00")

    reservation = service.create_walk_in(
        package_id=package.id,
        barber_id=monday_slots.id,
        slot_id=slot.id,
        customer_name="Walk In Guest",
        customer_phone="081311112222",
        cashier_id=cashier.id,
        payment_method=PaymentMethod.cash,
    )
    session.refresh(slot)

    assert reservation.status == ReservationStatus.completed.value
    assert reservation.is_walk_in
    assert reservation.customer_id is None
    assert reservation.customer_email is None
    assert reservation.total_price == 25000
    assert reservation.payment_method == "cash"
    assert reservation.completed_at == NOW
    assert reservation.confirmed_by == cashier.id
    assert reservation.completed_by == cashier.id
    assert slot.status == SlotStatus.completed.value
    assert slot.reservation_id == reservation.id


def test_price_is_snapshotted(book, session, package):
    reservation = book()
    package.price = 99000
    session.add(package)
    session.commit()

    session.refresh(reservation)
    assert reservation.total_price == 50000


def test_codes_are_sequential(book):
    assert book("11:00").code == "RES0001"
    assert book("12:00").code == "RES0002"


def test_email_required_for_online_booking(book):
    with pytest.raises(ValidationError):
        book(customer_email=None)


def test_same_slot_only_once(book, session, monday_slots):
    winner = book("11:00")
    for _ in range(4):
        with pytest.raises(ConflictError):
            book("11:00")

    holders = session.exec(select(Reservation).where(Reservation.slot_id == winner.slot_id)).all()
    assert [r.id for r in holders] == [winner.id]


def test_lost_claim_leaves_no_reservation(service, session, monday_slots, package, customer, monkeypatch):
    slot = _slot(session, monday_slots, "12:00")
    stale = Slot(**slot.model_dump())

    # another request books the slot after our read but before our write
    slot.status = SlotStatus.booked.value
    session.add(slot)
    session.commit()
    monkeypatch.setattr(ScheduleStore, "get", lambda self, slot_id: stale)

    with pytest.raises(ConflictError):
        service.create_reservation(
            package_id=package.id,
            barber_id=monday_slots.id,
            slot_id=slot.id,
            customer_name="Citra",
            customer_phone="081234567890",
            customer_email="citra@example.com",
            customer_id=customer.id,
        )

    assert session.exec(select(Reservation)).all() == []
    monkeypatch.undo()
    # the reservation number was not used up either
    assert service.create_reservation(
        package_id=package.id,
        barber_id=monday_slots.id,
        slot_id=_slot(session, monday_slots, "13:00").id,
        customer_name="Citra",
        customer_phone="081234567890",
        customer_email="citra@example.com",
        customer_id=customer.id,
    ).code == "RES0001"


def test_booking_checks(service, book, session, monday_slots, make_package, make_barber, package, customer):
    other = make_barber("Eko")
    with pytest.raises(ValidationError):
        book(barber_id=other.id)

    with pytest.raises(NotFoundError):
        book(package_id=999)

    retired = make_package("Old Style", is_active=False)
    with pytest.raises(InvalidStateError):
        book(package_id=retired.id)

    monday_slots.is_active = False
    session.add(monday_slots)
    session.commit()
    with pytest.raises(InvalidStateError):
        book()


def test_cannot_book_past_slot(session, monday_slots, package, customer):
    late = BookingService(session, clock=lambda: datetime(2024, 1, 1, 12, 30))
    with pytest.raises(InvalidStateError):
        late.create_reservation(
            package_id=package.id,
            barber_id=monday_slots.id,
            slot_id=_slot(session, monday_slots, "11:00").id,
            customer_name="Citra",
            customer_phone="081234567890",
            customer_email="citra@example.com",
        )


def test_unavailable_slot_cannot_be_booked(book, session, monday_slots):
    slot = _slot(session, monday_slots, "15:00")
    slot.status = SlotStatus.unavailable.value
    session.add(slot)
    session.commit()
    with pytest.raises(InvalidStateError):
        book("15:00")


@pytest.mark.parametrize("confirm_first", [False, True])
def test_cancel_releases_slot(service, book, session, monday_slots, confirm_first):
    reservation = book("16:00")
    if confirm_first:
        service.confirm(reservation.id)

    cancelled = service.cancel(reservation.id, reason="Changed plans")
    slot = _slot(session, monday_slots, "16:00")
    session.refresh(slot)

    assert cancelled.status == ReservationStatus.cancelled.value
    assert cancelled.cancellation_reason == "Changed plans"
    assert cancelled.cancelled_at == NOW
    assert slot.status == SlotStatus.available.value
    assert slot.reservation_id is None


def test_cancel_after_slot_completed_leaves_slot(service, book, session, monday_slots):
    reservation = book("17:00")
    service.confirm(reservation.id)
    slot = _slot(session, monday_slots, "17:00")
    slot.status = SlotStatus.completed.value
    session.add(slot)
    session.commit()

    service.cancel(reservation.id)
    session.refresh(slot)
    assert slot.status == SlotStatus.completed.value
    assert slot.reservation_id == reservation.id


def test_terminal_states_accept_nothing(service, book):
    done = book("11:00")
    service.confirm(done.id)
    service.complete(done.id)

    gone = book("12:00")
    service.cancel(gone.id)

    for reservation in (done, gone):
        for action in (service.confirm, service.start, service.complete, service.cancel):
            with pytest.raises(InvalidStateError):
                action(reservation.id)


def test_cancel_twice_is_rejected(service, book):
    reservation = book()
    service.cancel(reservation.id)
    with pytest.raises(InvalidStateError) as excinfo:
        service.cancel(reservation.id)
    assert "cancelled" in str(excinfo.value)


def test_in_progress_then_complete(service, book, session, monday_slots):
    reservation = book("19:00")
    service.confirm(reservation.id)
    started = service.start(reservation.id)
    assert started.status == ReservationStatus.in_progress.value

    with pytest.raises(InvalidStateError):
        service.cancel(reservation.id)

    done = service.complete(reservation.id, payment_method=PaymentMethod.e_wallet, service_notes="Fade #2")
    assert done.payment_method == "e_wallet"
    assert done.service_notes == "Fade #2"


def test_complete_requires_confirmation(service, book):
    reservation = book()
    with pytest.raises(InvalidStateError):
        service.complete(reservation.id)


def test_missing_reservation(service):
    with pytest.raises(NotFoundError):
        service.confirm(12345)


def test_customer_can_only_cancel_own(service, book, make_user):
    reservation = book()
    stranger = make_user()
    with pytest.raises(NotFoundError):
        service.cancel(reservation.id, customer_id=stranger.id)


def test_verified_payment_confirms(service, book, customer, cashier):
    reservation = book()
    payment = service.attach_payment(
        reservation.id, customer.id, PaymentMethod.bank_transfer, "https://img.example.com/proof.jpg"
    )
    assert payment.code == "PAY001"
    assert payment.amount == 50000
    assert payment.status == PaymentStatus.pending.value

    verified = service.verify_payment(payment.id, PaymentStatus.verified, actor_id=cashier.id)
    assert verified.status == PaymentStatus.verified.value
    assert service.reservations.get(reservation.id).status == ReservationStatus.confirmed.value

    with pytest.raises(InvalidStateError):
        service.verify_payment(payment.id, PaymentStatus.rejected, actor_id=cashier.id)


def test_rejected_payment_cancels_and_frees_slot(service, book, session, monday_slots, customer, cashier):
    reservation = book("20:00")
    payment = service.attach_payment(reservation.id, customer.id, PaymentMethod.e_wallet, "https://img/p.png")

    service.verify_payment(payment.id, PaymentStatus.rejected, actor_id=cashier.id, note="Blurry proof")
    cancelled = service.reservations.get(reservation.id)
    slot = _slot(session, monday_slots, "20:00")
    session.refresh(slot)

    assert cancelled.status == ReservationStatus.cancelled.value
    assert cancelled.cancellation_reason == "Blurry proof"
    assert slot.status == SlotStatus.available.value


def test_payment_rules(service, book, customer, make_user):
    reservation = book()
    stranger = make_user()

    with pytest.raises(ForbiddenError):
        service.attach_payment(reservation.id, stranger.id, PaymentMethod.bank_transfer, "https://img/p.png")
    with pytest.raises(ValidationError):
        service.attach_payment(reservation.id, customer.id, PaymentMethod.cash, "https://img/p.png")

    service.attach_payment(reservation.id, customer.id, PaymentMethod.bank_transfer, "https://img/p.png")
    with pytest.raises(ConflictError):
        service.attach_payment(reservation.id, customer.id, PaymentMethod.bank_transfer, "https://img/q.png")


def test_no_payment_on_cancelled_reservation(service, book, customer):
    reservation = book()
    service.cancel(reservation.id)
    with pytest.raises(InvalidStateError):
        service.attach_payment(reservation.id, customer.id, PaymentMethod.bank_transfer, "https://img/p.png")


def test_cancel_closes_pending_payment(service, book, customer, cashier):
    reservation = book()
    payment = service.attach_payment(
        reservation.id, customer.id, PaymentMethod.bank_transfer, "https://img.example.com/proof.jpg"
    )

    service.cancel(reservation.id, actor_id=customer.id, reason="Changed plans", customer_id=customer.id)
    closed = service.payment_for(reservation.id)

    assert closed.id == payment.id
    assert closed.status == PaymentStatus.rejected.value
    assert closed.verification_note == "Changed plans"
    for status in (PaymentStatus.verified, PaymentStatus.rejected):
        with pytest.raises(InvalidStateError):
            service.verify_payment(payment.id, status, actor_id=cashier.id)


def test_cancel_keeps_verified_payment(service, book, customer, cashier):
    reservation = book()
    payment = service.attach_payment(reservation.id, customer.id, PaymentMethod.e_wallet, "https://img/p.png")
    service.verify_payment(payment.id, PaymentStatus.verified, actor_id=cashier.id)

    service.cancel(reservation.id, actor_id=cashier.id)
    assert service.payment_for(reservation.id).status == PaymentStatus.verified.value


def test_concurrent_bookings_claim_slot_once(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    with Session(engine) as setup:
        barber = Barber(code=next_code(setup, "barber"), name="Budi Santoso")
        package = Package(code=next_code(setup, "package"), name="Classic Cut", price=50000)
        setup.add(barber)
        setup.add(package)
        setup.commit()
        generate_slots(setup, MONDAY, MONDAY + timedelta(days=1), now=NOW)
        slot_id = _slot(setup, barber, "11:00").id
        barber_id, package_id = barber.id, package.id

    attempts = 8
    barrier = threading.Barrier(attempts)

    def attempt(n):
        barrier.wait()
        with Session(engine) as session:
            try:
                BookingService(session, clock=lambda: NOW).create_reservation(
                    package_id=package_id,
                    barber_id=barber_id,
                    slot_id=slot_id,
                    customer_name=f"Customer {n}",
                    customer_phone="081234567890",
                    customer_email=f"customer{n}@example.com",
                )
                return "ok"
            except ConflictError:
                return "conflict"

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        outcomes = list(pool.map(attempt, range(attempts)))

    with Session(engine) as session:
        holders = session.exec(select(Reservation).where(Reservation.slot_id == slot_id)).all()
        slot = session.get(Slot, slot_id)

        assert sorted(outcomes) == ["conflict"] * (attempts - 1) + ["ok"]
        assert len(holders) == 1
        assert slot.status == SlotStatus.booked.value
        assert slot.reservation_id == holders[0].id
    engine.dispose()
