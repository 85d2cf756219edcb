"""Unit tests for invoice assembly."""

from decimal import Decimal

import pytest

from portal.core.exceptions import NotFoundError
from portal.models.booking import PaymentStatus
from portal.services.booking_service import BookingService
from portal.services.invoice_service import InvoiceService
from portal.services.lifecycle_service import LifecycleService


@pytest.mark.asyncio
async def test_invoice_for_placed_booking(test_session, catalog, sample_booking_data, sample_gateway_data):
    """Test an invoice combines booking, payment and catalog item."""
    booking, payment = await LifecycleService(test_session).place_booking(sample_booking_data, sample_gateway_data)

    invoice = await InvoiceService(test_session).assemble_invoice(booking.id)

    assert invoice.invoice_number == booking.id[:8]
    assert invoice.booking.id == booking.id
    assert invoice.payment.id == payment.id
    assert invoice.payment.persisted is True
    assert invoice.payment.payment_method == "bank_transfer"
    assert invoice.item.item_type == "destination"
    assert invoice.item.name == "Victoria Falls"
    assert invoice.item.location == "Victoria Falls"
    assert invoice.item.quantity == 2
    assert invoice.item.unit_price == Decimal("100.00")
    assert invoice.total_amount == Decimal("200.00")
    assert invoice.payment_status == PaymentStatus.PENDING
    assert invoice.payment_status_stale is False
    # The catalog link wins over the gateway reference
    assert invoice.payment_url == "https://pay.example.com/falls"


@pytest.mark.asyncio
async def test_invoice_without_payment_shows_placeholder(test_session, catalog, sample_event_booking_data):
    """Test a booking with no payment gets an unpersisted placeholder."""
    booking = await BookingService(test_session).create_booking(sample_event_booking_data)

    invoice = await InvoiceService(test_session).assemble_invoice(booking.id)

    assert invoice.payment.id is None
    assert invoice.payment.persisted is False
    assert invoice.payment.payment_method == "Online Payment"
    assert invoice.payment.status == PaymentStatus.PENDING
    assert invoice.item.item_type == "event"
    assert invoice.item.name == "Harare Jazz Night"
    assert invoice.item.unit_price == Decimal("15.00")
    assert invoice.payment_url is None


@pytest.mark.asyncio
async def test_invoice_prefers_booking_details(test_session, catalog, sample_booking_data):
    """Test display values in booking_details override the catalog."""
    booking = await BookingService(test_session).create_booking({
        **sample_booking_data,
        "booking_details": {
            "destination_name": "Falls sunset cruise",
            "destination_location": "Zambezi",
            "price_per_person": "90",
            "payment_url": "https://pay.example.com/cruise",
        },
    })

    invoice = await InvoiceService(test_session).assemble_invoice(booking.id)

    assert invoice.item.name == "Falls sunset cruise"
    assert invoice.item.location == "Zambezi"
    assert invoice.item.unit_price == Decimal("90.00")
    assert invoice.item.line_total == Decimal("200.00")
    assert invoice.payment_url == "https://pay.example.com/cruise"


@pytest.mark.asyncio
async def test_invoice_reads_status_through_payment(test_session, catalog, sample_booking_data):
    """Test a stale booking copy is flagged and the payment status is shown."""
    service = LifecycleService(test_session)
    booking, payment = await service.place_booking(sample_booking_data)
    await service.payments.mark_completed(payment.id)

    invoice = await InvoiceService(test_session).assemble_invoice(booking.id)

    assert invoice.payment_status == PaymentStatus.COMPLETED
    assert invoice.payment_status_stale is True
    assert invoice.booking.payment_status == PaymentStatus.PENDING


@pytest.mark.asyncio
async def test_invoice_gateway_reference_fallback(test_session, catalog, sample_event_booking_data, sample_gateway_data):
    """Test the gateway reference is used when nothing else gives a payment link."""
    booking, _ = await LifecycleService(test_session).place_booking(sample_event_booking_data, sample_gateway_data)

    invoice = await InvoiceService(test_session).assemble_invoice(booking.id)

    assert invoice.payment_url == "https://pay.example.com/ref/123"


@pytest.mark.asyncio
async def test_invoice_missing_booking(test_session):
    """Test invoicing an unknown booking."""
    with pytest.raises(NotFoundError):
        await InvoiceService(test_session).assemble_invoice("missing")
