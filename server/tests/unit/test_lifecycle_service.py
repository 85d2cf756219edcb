"""Unit tests for the booking/payment lifecycle coordinator."""

import logging
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import update

from portal.core.exceptions import (
    DuplicateBookingError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
    TransientError,
)
from portal.models.booking import Booking, BookingStatus, PaymentStatus
from portal.services.idempotency_service import IdempotencyMismatchError
from portal.services.lifecycle_service import LifecycleService


@pytest_asyncio.fixture
async def placed(test_session, catalog, sample_booking_data, sample_gateway_data):
    """A booking placed through the coordinator, with its payment."""
    return await LifecycleService(test_session).place_booking(sample_booking_data, sample_gateway_data)


@pytest.mark.asyncio
async def test_place_booking_links_payment(test_session, placed):
    """Test placing a booking creates a matching payment and links it back."""
    booking, payment = placed

    assert booking.status == BookingStatus.PENDING.value
    assert booking.payment_status == PaymentStatus.PENDING.value
    assert booking.payment_id == payment.id
    assert payment.booking_id == booking.id
    assert payment.amount == booking.total_price
    assert payment.payment_gateway_reference == "https://pay.example.com/ref/123"


@pytest.mark.asyncio
async def test_place_booking_duplicate(test_session, placed, sample_booking_data):
    """Test a second placement for the same user and destination is rejected."""
    service = LifecycleService(test_session)

    with pytest.raises(DuplicateBookingError):
        await service.place_booking(sample_booking_data)


@pytest.mark.asyncio
async def test_place_booking_idempotent_replay(test_session, catalog, sample_booking_data):
    """Test replaying with the same key returns the original booking and payment."""
    service = LifecycleService(test_session)

    booking, payment = await service.place_booking(sample_booking_data, idempotency_key="key-1")
    replay_booking, replay_payment = await service.place_booking(sample_booking_data, idempotency_key="key-1")

    assert replay_booking.id == booking.id
    assert replay_payment.id == payment.id
    assert len(await service.bookings.list_user_bookings("u1")) == 1


@pytest.mark.asyncio
async def test_place_booking_replay_finishes_interrupted_request(test_session, catalog, sample_booking_data):
    """Test a replay creates the payment when the first attempt stopped after the booking."""
    service = LifecycleService(test_session)

    with patch.object(
        service.payments, "create_payment", side_effect=TransientError(operation="payment.create")
    ):
        with pytest.raises(TransientError):
            await service.place_booking(sample_booking_data, idempotency_key="key-2")

    booking, payment = await service.place_booking(sample_booking_data, idempotency_key="key-2")

    assert payment.booking_id == booking.id
    assert booking.payment_id == payment.id
    assert len(await service.bookings.list_user_bookings("u1")) == 1


@pytest.mark.asyncio
async def test_place_booking_key_reuse_with_other_body(test_session, catalog, sample_booking_data):
    """Test reusing a key for a different request is rejected."""
    service = LifecycleService(test_session)
    await service.place_booking(sample_booking_data, idempotency_key="key-3")

    with pytest.raises(IdempotencyMismatchError) as exc_info:
        await service.place_booking({**sample_booking_data, "user_id": "u2"}, idempotency_key="key-3")

    assert exc_info.value.status_code == 422


@pytest.mark.asyncio
async def test_create_payment_idempotent(test_session, catalog, sample_booking_data):
    """Test creating a payment twice with one key yields one payment."""
    service = LifecycleService(test_session)
    booking = await service.bookings.create_booking(sample_booking_data)

    first = await service.create_payment(booking.id, "200.00", idempotency_key="pay-1")
    second = await service.create_payment(booking.id, "200.00", idempotency_key="pay-1")

    assert first.id == second.id
    refreshed = await service.bookings.get_booking_or_raise(booking.id)
    assert refreshed.payment_id == first.id


@pytest.mark.asyncio
async def test_create_payment_amount_mismatch_leaves_booking_unlinked(test_session, catalog, sample_booking_data):
    """Test a rejected payment does not touch the booking."""
    service = LifecycleService(test_session)
    booking = await service.bookings.create_booking(sample_booking_data)

    with pytest.raises(InvariantViolationError):
        await service.create_payment(booking.id, "199.99")

    refreshed = await service.bookings.get_booking_or_raise(booking.id)
    assert refreshed.payment_id is None


@pytest.mark.asyncio
async def test_payment_flow_mirrors_status(test_session, placed):
    """Test proof upload then completion, with the booking copy following each step."""
    booking, payment = placed
    service = LifecycleService(test_session)

    booking_after_proof, processing = await service.upload_payment_proof(booking.id, "https://proof.png")
    assert processing.status == PaymentStatus.PROCESSING.value
    assert booking_after_proof.payment_status == PaymentStatus.PROCESSING.value
    assert booking_after_proof.payment_proof_url == "https://proof.png"

    completed = await service.complete_payment(payment.id)
    assert completed.status == PaymentStatus.COMPLETED.value
    refreshed = await service.bookings.get_booking_or_raise(booking.id)
    assert refreshed.payment_status == PaymentStatus.COMPLETED.value

    with pytest.raises(InvalidTransitionError):
        await service.mark_payment_processing(payment.id, "https://proof-2.png")


@pytest.mark.asyncio
async def test_fail_and_refund_mirror(test_session, catalog, sample_booking_data, sample_event_booking_data):
    """Test failure and refund are both copied onto the booking."""
    service = LifecycleService(test_session)

    failed_booking, failed_payment = await service.place_booking(sample_booking_data)
    await service.fail_payment(failed_payment.id, "expired")
    assert (await service.bookings.get_booking_or_raise(failed_booking.id)).payment_status == "failed"

    refunded_booking, refunded_payment = await service.place_booking(sample_event_booking_data)
    await service.complete_payment(refunded_payment.id)
    await service.refund_payment(refunded_payment.id)
    assert (await service.bookings.get_booking_or_raise(refunded_booking.id)).payment_status == "refunded"


@pytest.mark.asyncio
async def test_upload_proof_without_payment(test_session, catalog, sample_booking_data):
    """Test a proof cannot be attached before a payment exists."""
    service = LifecycleService(test_session)
    booking = await service.bookings.create_booking(sample_booking_data)

    with pytest.raises(InvariantViolationError):
        await service.upload_payment_proof(booking.id, "https://proof.png")


@pytest.mark.asyncio
async def test_cancel_booking_leaves_payment(test_session, placed):
    """Test cancelling a booking does not change its in-flight payment."""
    booking, payment = placed
    service = LifecycleService(test_session)

    cancelled = await service.cancel_booking(booking.id, "change of plans")

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "change of plans"
    assert (await service.payments.get_payment_or_raise(payment.id)).status == PaymentStatus.PENDING.value

    with pytest.raises(InvalidTransitionError):
        await service.cancel_booking(booking.id, "again")


@pytest.mark.asyncio
async def test_reconcile_repairs_drift(test_session, placed):
    """Test reconcile copies the payment status back after a lost mirror write."""
    booking, payment = placed
    service = LifecycleService(test_session)
    await service.payments.mark_completed(payment.id)

    resolution = await service.resolve_payment_status(await service.bookings.get_booking_or_raise(booking.id))
    assert resolution.stale is True
    assert resolution.payment_status == PaymentStatus.COMPLETED
    assert resolution.cached_payment_status == PaymentStatus.PENDING

    reconciled = await service.reconcile_booking(booking.id)

    assert reconciled.payment_status == PaymentStatus.COMPLETED.value
    resolution = await service.resolve_payment_status(reconciled)
    assert resolution.stale is False


@pytest.mark.asyncio
async def test_reconcile_relinks_missing_payment_id(test_session, placed):
    """Test a booking that lost its payment_id finds its payment again."""
    booking, payment = placed
    service = LifecycleService(test_session)
    await test_session.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(payment_id=None)
        .execution_options(synchronize_session=False)
    )
    await test_session.commit()

    reconciled = await service.reconcile_booking(booking.id)

    assert reconciled.payment_id == payment.id


@pytest.mark.asyncio
async def test_mirror_failure_propagates(test_session, placed, caplog):
    """Test a failed mirror write is logged and raised after the payment has moved."""
    booking, payment = placed
    service = LifecycleService(test_session)

    with patch.object(
        service.bookings, "update_booking", side_effect=TransientError(operation="booking.update")
    ):
        with caplog.at_level(logging.ERROR, logger="portal.services.lifecycle_service"):
            with pytest.raises(TransientError):
                await service.complete_payment(payment.id)

    [record] = [r for r in caplog.records if r.name == "portal.services.lifecycle_service"]
    assert record.getMessage() == "Failed to mirror payment status onto booking"
    assert record.booking_id == booking.id
    assert record.payment_id == payment.id
    assert record.payment_status == PaymentStatus.COMPLETED.value

    assert (await service.payments.get_payment_or_raise(payment.id)).status == PaymentStatus.COMPLETED.value
    assert (await service.bookings.get_booking_or_raise(booking.id)).payment_status == PaymentStatus.PENDING.value


@pytest.mark.asyncio
async def test_reconcile_missing_booking(test_session):
    """Test reconciling an unknown booking."""
    with pytest.raises(NotFoundError):
        await LifecycleService(test_session).reconcile_booking("missing")
