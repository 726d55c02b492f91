"""
Tests for payment initiation and confirmation.
"""

from datetime import date
from decimal import Decimal

import pytest

from venue_booking.core.exceptions import (
    ConflictError,
    GatewayUnavailableError,
    InvalidTransitionError,
    PaymentMismatchError,
    PermissionDeniedError,
)
from venue_booking.models.payment import PaymentProvider, PaymentRecordStatus
from venue_booking.models.reservation import ApprovalStatus, PaymentStatus


@pytest.fixture
def priced_request(make_request, catalog):
    def _make(start=date(2025, 6, 10), end=date(2025, 6, 12), **overrides):
        overrides.setdefault("selections", {"CateringTent": [catalog["tent"]]})
        return make_request(start, end, **overrides)

    return _make


@pytest.mark.asyncio
async def test_initiate_payment_records_pending_attempt(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())

    checkout = await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)

    assert checkout.amount == Decimal("400.00")
    assert checkout.redirect_url.endswith(checkout.provider_reference)
    assert khalti.checkouts[checkout.provider_reference] == Decimal("400.00")

    stored = await engine.get_reservation(catalog["customer"], reservation.id)
    assert len(stored.payments) == 1
    assert stored.payments[0].status is PaymentRecordStatus.PENDING
    assert stored.payments[0].provider_reference == checkout.provider_reference
    assert stored.payment_status is PaymentStatus.UNPAID


@pytest.mark.asyncio
async def test_initiate_accepts_provider_name(engine, catalog, priced_request):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await engine.initiate_payment(catalog["customer"], reservation.id, "KHALTI")
    assert checkout.provider is PaymentProvider.KHALTI


@pytest.mark.asyncio
async def test_initiate_gateway_failure_leaves_no_record(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    khalti.unavailable = True

    with pytest.raises(GatewayUnavailableError):
        await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)

    assert khalti.initiate_calls == 1
    stored = await engine.get_reservation(catalog["customer"], reservation.id)
    assert stored.payments == []


@pytest.mark.asyncio
async def test_initiate_with_unconfigured_provider(engine, catalog, priced_request):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())

    with pytest.raises(GatewayUnavailableError):
        await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.STRIPE)


@pytest.mark.asyncio
async def test_initiate_requires_a_price(engine, catalog, make_request):
    reservation = await engine.create_reservation(catalog["customer"], make_request(date(2025, 6, 10), date(2025, 6, 12)))

    with pytest.raises(PaymentMismatchError):
        await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)


@pytest.mark.asyncio
async def test_initiate_for_someone_elses_booking(engine, catalog, priced_request):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())

    with pytest.raises(PermissionDeniedError):
        await engine.initiate_payment(catalog["other"], reservation.id, PaymentProvider.KHALTI)


@pytest.mark.asyncio
async def test_initiate_for_dates_taken_by_an_approved_booking(engine, catalog, priced_request):
    first = await engine.create_reservation(catalog["customer"], priced_request(date(2025, 6, 10), date(2025, 6, 12)))
    second = await engine.create_reservation(
        catalog["other"],
        priced_request(date(2025, 6, 12), date(2025, 6, 14), user_id=catalog["other"].user_id),
    )
    await engine.set_approval(catalog["admin"], first.id, approve=True)

    with pytest.raises(ConflictError):
        await engine.initiate_payment(catalog["other"], second.id, PaymentProvider.KHALTI)


async def _pay(engine, catalog, reservation_id, khalti):
    checkout = await engine.initiate_payment(catalog["customer"], reservation_id, PaymentProvider.KHALTI)
    khalti.complete(checkout.provider_reference)
    return checkout


@pytest.mark.asyncio
async def test_confirm_payment_approves_and_marks_paid(engine, catalog, priced_request, khalti, notifier):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)

    confirmed = await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)
    await engine.dispatcher.drain()

    assert confirmed.approval_status is ApprovalStatus.APPROVED
    assert confirmed.payment_status is PaymentStatus.PAID
    assert confirmed.payments[0].status is PaymentRecordStatus.COMPLETED
    assert confirmed.payments[0].transaction_id == f"txn-{checkout.provider_reference}"
    assert len(notifier.sms) == 1


@pytest.mark.asyncio
async def test_confirm_payment_is_idempotent(engine, catalog, priced_request, khalti, notifier):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)

    first = await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)
    second = await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)
    await engine.dispatcher.drain()

    assert first.payments == second.payments
    assert len(second.payments) == 1
    assert second.payments[0].status is PaymentRecordStatus.COMPLETED
    assert khalti.verify_calls == 1
    assert len(notifier.sms) == 1


@pytest.mark.asyncio
async def test_payment_overrides_rejection(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)
    await engine.set_approval(catalog["admin"], reservation.id, approve=False)

    confirmed = await engine.confirm_payment(reservation.id, checkout.provider_reference, Decimal("400"))

    assert confirmed.approval_status is ApprovalStatus.APPROVED
    assert confirmed.payment_status is PaymentStatus.PAID


@pytest.mark.asyncio
async def test_paid_reservation_cannot_be_rejected(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)
    await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)

    with pytest.raises(InvalidTransitionError):
        await engine.set_approval(catalog["admin"], reservation.id, approve=False)

    stored = await engine.get_reservation(catalog["admin"], reservation.id)
    assert stored.approval_status is ApprovalStatus.APPROVED


@pytest.mark.asyncio
async def test_paid_reservation_cannot_be_paid_again(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)
    await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)

    with pytest.raises(InvalidTransitionError):
        await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)


@pytest.mark.asyncio
async def test_confirm_with_wrong_amount(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)

    with pytest.raises(PaymentMismatchError):
        await engine.confirm_payment(reservation.id, checkout.provider_reference, 399)
    assert khalti.verify_calls == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["abc", None, "Infinity"])
async def test_confirm_with_malformed_amount(engine, catalog, priced_request, khalti, amount):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)

    with pytest.raises(PaymentMismatchError):
        await engine.confirm_payment(reservation.id, checkout.provider_reference, amount)
    assert khalti.verify_calls == 0

    current = await engine.get_reservation(catalog["customer"], reservation.id)
    assert current.payment_status is PaymentStatus.UNPAID


@pytest.mark.asyncio
async def test_confirm_with_unknown_reference(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    await _pay(engine, catalog, reservation.id, khalti)

    with pytest.raises(PaymentMismatchError):
        await engine.confirm_payment(reservation.id, "txn123", 400)


@pytest.mark.asyncio
async def test_confirm_before_gateway_completion(engine, catalog, priced_request):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)

    with pytest.raises(PaymentMismatchError):
        await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)

    stored = await engine.get_reservation(catalog["customer"], reservation.id)
    assert stored.payments[0].status is PaymentRecordStatus.PENDING
    assert stored.payment_status is PaymentStatus.UNPAID


@pytest.mark.asyncio
async def test_gateway_reports_different_amount(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await engine.initiate_payment(catalog["customer"], reservation.id, PaymentProvider.KHALTI)
    khalti.complete(checkout.provider_reference, amount=Decimal("10.00"))

    with pytest.raises(PaymentMismatchError):
        await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)


@pytest.mark.asyncio
async def test_gateway_timeout_leaves_payment_pending(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)
    khalti.unavailable = True

    with pytest.raises(GatewayUnavailableError):
        await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)

    assert khalti.verify_calls == 3
    stored = await engine.get_reservation(catalog["customer"], reservation.id)
    assert stored.payments[0].status is PaymentRecordStatus.PENDING
    assert stored.approval_status is ApprovalStatus.PENDING

    # The same confirmation succeeds once the provider is back
    khalti.unavailable = False
    confirmed = await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)
    assert confirmed.payment_status is PaymentStatus.PAID


@pytest.mark.asyncio
async def test_transient_verify_failures_are_retried(engine, catalog, priced_request, khalti):
    reservation = await engine.create_reservation(catalog["customer"], priced_request())
    checkout = await _pay(engine, catalog, reservation.id, khalti)
    khalti.verify_failures = 2

    confirmed = await engine.confirm_payment(reservation.id, checkout.provider_reference, 400)

    assert confirmed.payment_status is PaymentStatus.PAID
    assert khalti.verify_calls == 3


@pytest.mark.asyncio
async def test_payment_rejects_shadowed_pending(engine, catalog, priced_request, khalti):
    paid = await engine.create_reservation(catalog["customer"], priced_request(date(2025, 6, 10), date(2025, 6, 12)))
    neighbour = await engine.create_reservation(
        catalog["other"],
        priced_request(date(2025, 6, 12), date(2025, 6, 14), user_id=catalog["other"].user_id),
    )
    checkout = await _pay(engine, catalog, paid.id, khalti)

    await engine.confirm_payment(paid.id, checkout.provider_reference, 400)

    stored = await engine.get_reservation(catalog["admin"], neighbour.id)
    assert stored.approval_status is ApprovalStatus.REJECTED
