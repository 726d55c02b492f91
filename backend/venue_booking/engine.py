"""
BookingEngine: the public surface of the booking lifecycle.

Every operation follows the same shape:

  1. Bind the operation name into the log context.
  2. Check the caller's role.
  3. For mutations, take the in-process lock for the resource, open one
     transaction and row-lock the resource inside it.
  4. Run the service function, commit.
  5. After commit: metrics, stats cache invalidation, notifications.

Services never commit; the engine owns transaction boundaries. ORM objects
are converted to response schemas once the session is closed.
"""

import time
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from venue_booking.core.config import Settings, get_settings
from venue_booking.core.exceptions import (
    BookingError,
    ConflictError,
    GatewayUnavailableError,
    InvalidSelectionError,
    PaymentMismatchError,
    PersistenceError,
)
from venue_booking.core.locks import KeyedLocks
from venue_booking.core.logging import bind_operation, get_logger
from venue_booking.core.metrics import (
    record_approval,
    record_payment_confirmation,
    record_reservation_attempt,
    reservation_latency,
)
from venue_booking.core.money import Number, to_decimal
from venue_booking.core.security import Principal, require_operator, require_self_or_operator
from venue_booking.infrastructure.stripe_gateway import StripeGateway
from venue_booking.models.payment import PaymentProvider
from venue_booking.schemas.reservation import (
    MonthBucket,
    PaymentInitiationResponse,
    ReservationCreate,
    ReservationListResponse,
    ReservationResponse,
)
from venue_booking.services import (
    cache_service,
    dashboard_service,
    export_service,
    payment_service,
    reservation_query_service,
    reservation_service,
)
from venue_booking.services.availability_service import get_resource_id, lock_resource
from venue_booking.services.interfaces.notifier import Notifier
from venue_booking.services.interfaces.payment_gateway import PaymentGateway
from venue_booking.services.notification_service import ApprovalNotice, NotificationDispatcher

logger = get_logger(__name__)


class BookingEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        gateways: Optional[Mapping[PaymentProvider, PaymentGateway]] = None,
        settings: Optional[Settings] = None,
        retry_backoff: float = 0.5,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._notifier = notifier
        self._gateways = dict(gateways or {})
        self._dispatcher = NotificationDispatcher(
            notifier,
            channel=self._settings.NOTIFICATION_CHANNEL,
            timeout=self._settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
        self._locks = KeyedLocks()
        self._retry_backoff = retry_backoff

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def providers(self) -> frozenset[PaymentProvider]:
        """Payment providers a caller may initiate with."""
        return frozenset(self._gateways)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """One session, one transaction. Database failures become PersistenceError."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                logger.error("database_error", error=str(e), error_type=type(e).__name__)
                raise PersistenceError("Database error, please retry", error_type=type(e).__name__) from e

    def _resource_lock(self, resource_id: int):
        return self._locks.get(("resource", resource_id))

    async def _resource_of(self, reservation_id: int) -> int:
        async with self._transaction() as db:
            return await get_resource_id(db, reservation_id)

    def _gateway(self, provider: PaymentProvider) -> PaymentGateway:
        gateway = self._gateways.get(provider)
        if gateway is None:
            raise GatewayUnavailableError(
                f"Payment provider {provider.value} is not configured",
                gateway=provider.value,
            )
        return gateway

    # ------------------------------------------------------------------
    # Reservation lifecycle
    # ------------------------------------------------------------------

    async def create_reservation(self, principal: Principal, request: ReservationCreate) -> ReservationResponse:
        bind_operation("create_reservation", resource_id=request.resource_id, user_id=principal.user_id)

        started = time.perf_counter()
        try:
            async with self._resource_lock(request.resource_id):
                async with self._transaction() as db:
                    reservation = await reservation_service.create_reservation(
                        db,
                        principal,
                        request,
                        reject_overlapping=self._settings.REJECT_OVERLAPPING_PENDING_ON_APPROVAL,
                    )
        except ConflictError as e:
            record_reservation_attempt(e.kind.value)
            raise
        except InvalidSelectionError:
            record_reservation_attempt("invalid_selection")
            raise
        except BookingError:
            record_reservation_attempt("error")
            raise
        finally:
            reservation_latency.observe(time.perf_counter() - started)

        record_reservation_attempt("admitted")
        await cache_service.invalidate_stats_cache()
        return ReservationResponse.model_validate(reservation)

    async def set_approval(self, principal: Principal, reservation_id: int, approve: bool) -> ReservationResponse:
        require_operator(principal)
        bind_operation("set_approval", reservation_id=reservation_id, approve=approve)

        resource_id = await self._resource_of(reservation_id)
        async with self._resource_lock(resource_id):
            async with self._transaction() as db:
                await lock_resource(db, resource_id)
                outcome = await reservation_service.set_approval(
                    db,
                    reservation_id,
                    approve,
                    reject_overlapping=self._settings.REJECT_OVERLAPPING_PENDING_ON_APPROVAL,
                )

        record_approval("approved" if approve else "rejected")
        if outcome.auto_rejected_ids:
            record_approval("auto_rejected", len(outcome.auto_rejected_ids))
        await cache_service.invalidate_stats_cache()

        if outcome.newly_approved:
            self._dispatcher.dispatch_approval(ApprovalNotice.from_reservation(outcome.reservation))
        return ReservationResponse.model_validate(outcome.reservation)

    async def delete_reservation(self, principal: Principal, reservation_id: int) -> None:
        require_operator(principal)
        bind_operation("delete_reservation", reservation_id=reservation_id)

        resource_id = await self._resource_of(reservation_id)
        async with self._resource_lock(resource_id):
            async with self._transaction() as db:
                await lock_resource(db, resource_id)
                await reservation_service.delete_reservation(db, reservation_id)

        await cache_service.invalidate_stats_cache()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def initiate_payment(
        self,
        principal: Principal,
        reservation_id: int,
        provider: Union[PaymentProvider, str],
    ) -> PaymentInitiationResponse:
        try:
            provider = PaymentProvider(provider)
        except ValueError:
            raise GatewayUnavailableError(f"Unknown payment provider {provider}", gateway=str(provider)) from None
        bind_operation("initiate_payment", reservation_id=reservation_id, provider=provider.value)
        gateway = self._gateway(provider)

        async with self._transaction() as db:
            reservation = await payment_service.prepare_payment(db, principal, reservation_id)

        amount = to_decimal(reservation.total_price)
        order_id, order_name = payment_service.order_reference(reservation_id)
        # No retry: a second initiate would open a second checkout at the provider
        checkout = await gateway.initiate(amount, order_id, order_name)

        async with self._transaction() as db:
            await payment_service.record_initiated_payment(db, reservation_id, provider, checkout, amount)

        return PaymentInitiationResponse(
            reservation_id=reservation_id,
            provider=provider,
            provider_reference=checkout.provider_reference,
            redirect_url=checkout.redirect_url,
            amount=amount,
        )

    async def confirm_payment(
        self,
        reservation_id: int,
        provider_reference: str,
        amount: Number,
    ) -> ReservationResponse:
        """
        Gateway callback. Safe to call any number of times for the same
        payment: only the first successful call writes or notifies.
        """
        bind_operation("confirm_payment", reservation_id=reservation_id, provider_reference=provider_reference)

        try:
            resource_id = await self._resource_of(reservation_id)
            async with self._transaction() as db:
                check = await payment_service.find_payment_for_confirmation(
                    db, reservation_id, provider_reference, amount
                )

            if check.already_completed:
                record_payment_confirmation("already_completed")
                logger.info("payment_already_completed", payment_id=check.record.id)
                return ReservationResponse.model_validate(check.reservation)

            verification = await payment_service.verify_payment(
                self._gateway(check.record.provider),
                provider_reference,
                max_attempts=self._settings.GATEWAY_MAX_RETRIES,
                backoff_seconds=self._retry_backoff,
            )
            payment_service.ensure_verified(verification, check.record)
        except PaymentMismatchError:
            record_payment_confirmation("mismatch")
            raise
        except GatewayUnavailableError:
            record_payment_confirmation("gateway_error")
            raise

        async with self._resource_lock(resource_id):
            async with self._transaction() as db:
                await lock_resource(db, resource_id)
                outcome = await payment_service.complete_payment(
                    db,
                    reservation_id,
                    check.record.id,
                    verification,
                    reject_overlapping=self._settings.REJECT_OVERLAPPING_PENDING_ON_APPROVAL,
                )

        if not outcome.newly_completed:
            record_payment_confirmation("already_completed")
            return ReservationResponse.model_validate(outcome.reservation)

        record_payment_confirmation("completed")
        await cache_service.invalidate_stats_cache()
        if outcome.newly_approved:
            self._dispatcher.dispatch_approval(ApprovalNotice.from_reservation(outcome.reservation))
        return ReservationResponse.model_validate(outcome.reservation)

    async def confirm_stripe_webhook(self, payload: Union[bytes, str], signature: str) -> Optional[ReservationResponse]:
        """Verify a Stripe webhook and confirm the checkout it reports. None for ignored events."""
        bind_operation("confirm_stripe_webhook")

        gateway = self._gateway(PaymentProvider.STRIPE)
        if not isinstance(gateway, StripeGateway):
            raise GatewayUnavailableError("Stripe webhooks are not supported by this gateway", gateway="stripe")

        payment = gateway.parse_webhook(payload, signature)
        if payment is None:
            return None

        async with self._transaction() as db:
            record = await payment_service.find_payment_by_reference(
                db, PaymentProvider.STRIPE, payment.session_id
            )
            reservation_id = record.reservation_id

        return await self.confirm_payment(reservation_id, payment.session_id, payment.amount)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_reservation(self, principal: Principal, reservation_id: int) -> ReservationResponse:
        bind_operation("get_reservation", reservation_id=reservation_id)

        async with self._transaction() as db:
            reservation = await reservation_service.get_reservation(db, reservation_id)
        require_self_or_operator(principal, reservation.user_id)
        return ReservationResponse.model_validate(reservation)

    async def list_reservations(
        self,
        principal: Principal,
        *,
        resource_id: Optional[int] = None,
        search: str = "",
        month: Optional[int] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ReservationListResponse:
        require_operator(principal)
        bind_operation("list_reservations", resource_id=resource_id)
        page, page_size = max(page, 1), max(page_size, 1)

        async with self._transaction() as db:
            reservations, total = await reservation_query_service.list_reservations(
                db,
                resource_id=resource_id,
                search=search,
                month=month,
                year=year,
                page=page,
                page_size=page_size,
            )
        return ReservationListResponse(
            reservations=[ReservationResponse.model_validate(r) for r in reservations],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def list_user_reservations(
        self,
        principal: Principal,
        user_id: int,
        page: int = 1,
        page_size: int = 20,
    ) -> ReservationListResponse:
        require_self_or_operator(principal, user_id)
        bind_operation("list_user_reservations", user_id=user_id)
        page, page_size = max(page, 1), max(page_size, 1)

        async with self._transaction() as db:
            reservations, total = await reservation_query_service.list_user_reservations(
                db, user_id, page, page_size
            )
        return ReservationListResponse(
            reservations=[ReservationResponse.model_validate(r) for r in reservations],
            total=total,
            page=page,
            page_size=page_size,
        )

    async def get_monthly_stats(
        self,
        resource_id: Optional[int] = None,
        *,
        today: Optional[date] = None,
    ) -> list[MonthBucket]:
        bind_operation("get_monthly_stats", resource_id=resource_id)
        today = today or date.today()

        cached = await cache_service.get_cached_stats(resource_id, today)
        if cached is not None:
            return cached

        generation = await cache_service.get_stats_generation()
        async with self._transaction() as db:
            buckets = await dashboard_service.monthly_approval_counts(db, resource_id, today)

        await cache_service.set_cached_stats(resource_id, today, buckets, generation)
        return buckets

    async def export_reservations_xlsx(
        self,
        principal: Principal,
        month: int,
        year: int,
        search: str = "",
        resource_id: Optional[int] = None,
    ) -> bytes:
        require_operator(principal)
        bind_operation("export_reservations_xlsx", month=month, year=year)

        async with self._transaction() as db:
            return await export_service.export_reservations_xlsx(db, month, year, search, resource_id)

    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Wait for in-flight notifications, then release gateway clients."""
        await self._dispatcher.drain()
        await self._notifier.aclose()
        for gateway in self._gateways.values():
            await gateway.aclose()
        logger.info("engine_closed")
