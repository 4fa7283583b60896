"""
Application service orchestrating the pay-in order use-cases.

The coordinator owns the order state machine. Every mutation goes through
``OrderStore.transition``; concurrent callbacks, status refreshes and UTR
submissions for the same order race on that primitive and the loser inspects
the conflict snapshot instead of retrying blindly.

Gateway implementations are provided by infrastructure and injected from the
composition root (``api/dependencies.py``).
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterable, Mapping, Optional

from application.dtos.orders import (
    CreateOrder,
    CreatedOrder,
    OrderView,
    ReconcileResult,
    RefreshResult,
)
from application.ports.payment_gateway import GatewayLink
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    InvalidSignatureException,
    OrderFieldImmutableException,
    OrderNotFoundException,
    OrderStatusConflictException,
    StaleRequestException,
)
from domain.order.entity import (
    ALL_STATUSES,
    NON_TERMINAL_STATUSES,
    TERMINAL_STATUSES,
    Order,
    OrderPatch,
    OrderStatus,
    generate_order_id,
    is_valid_utr,
    to_reconcile_status,
)
from domain.order.repository import OrderStore
from domain.order.signature import SignatureCodec
from infrastructure.external.payments.exceptions import PaymentProviderError
from shared.codes.payment_codes import map_provider_status


logger = get_logger(__name__)

Clock = Callable[[], datetime]

CALLBACK_REQUIRED_FIELDS = ("mchId", "orderId", "status", "timestamp")
GATEWAY_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
TWO_PLACES = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_gateway_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(GATEWAY_TIMESTAMP_FORMAT)


def parse_gateway_timestamp(raw: str) -> datetime:
    """Parse ``yyyyMMddHHmmss`` (UTC), epoch seconds or epoch milliseconds."""
    s = (raw or "").strip()
    if not s.isascii() or not s.isdigit():
        raise DomainValidationException(f"Invalid timestamp: {raw!r}", field="timestamp")
    try:
        if len(s) == 14:
            return datetime.strptime(s, GATEWAY_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        if len(s) == 13:
            return datetime.fromtimestamp(int(s) / 1000, tz=timezone.utc)
        if len(s) == 10:
            return datetime.fromtimestamp(int(s), tz=timezone.utc)
    except (ValueError, OverflowError, OSError) as exc:
        raise DomainValidationException(f"Invalid timestamp: {raw!r}", field="timestamp") from exc
    raise DomainValidationException(f"Invalid timestamp: {raw!r}", field="timestamp")


class OrderCoordinator:
    """Create orders, apply gateway callbacks, reconcile UTR submissions."""

    def __init__(
        self,
        store: OrderStore,
        gateway: GatewayLink,
        *,
        codec: SignatureCodec,
        merchant_id: str,
        notify_url: str,
        subject: str = "UPI Payment",
        default_currency: str = "INR",
        order_id_prefix: str = "MB",
        ack: str = "SUCCESS",
        tolerance_seconds: int = 300,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.codec = codec
        self.merchant_id = merchant_id
        self.notify_url = notify_url
        self.subject = subject
        self.default_currency = default_currency
        self.order_id_prefix = order_id_prefix
        self.ack = ack
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock or _utcnow

    async def aclose(self) -> None:
        await self.gateway.aclose()

    # ------------------------------------------------------------------ create

    async def create(self, req: CreateOrder) -> CreatedOrder:
        now = self._clock()
        amount = Decimal(req.amount).quantize(TWO_PLACES)
        order = Order(
            order_id=generate_order_id(self.order_id_prefix, now),
            amount=amount,
            currency=req.currency or self.default_currency,
            pay_type=req.pay_type,
            created_at=now,
            metadata=dict(req.metadata or {}),
        )
        params = self.codec.signed({
            "mchId": self.merchant_id,
            "orderId": order.order_id,
            "amount": f"{amount:.2f}",
            "currency": order.currency,
            "payType": order.pay_type.value,
            "subject": self.subject,
            "notifyUrl": self.notify_url,
            "timestamp": format_gateway_timestamp(now),
        })
        logger.info(
            "order_create_request",
            order_id=order.order_id,
            amount=str(amount),
            pay_type=order.pay_type.value,
        )

        try:
            created = await self.gateway.create_order(params)
        except Exception as exc:
            logger.warning(
                "order_create_failed",
                order_id=order.order_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

        order.pay_url = created.pay_url
        order.qr_payload = created.qr_payload
        stored = await self.store.insert(order)
        try:
            stored = await self.store.transition(
                order.order_id,
                {OrderStatus.CREATED},
                OrderStatus.PENDING,
                OrderPatch(platform_order_id=created.platform_order_id),
            )
        except OrderStatusConflictException as exc:
            stored = exc.current
            logger.info(
                "order_advanced_before_ack",
                order_id=order.order_id,
                status=stored.status.value,
            )

        logger.info(
            "order_create_response",
            order_id=stored.order_id,
            platform_order_id=created.platform_order_id,
            status=stored.status.value,
        )
        return CreatedOrder(
            order_id=stored.order_id,
            pay_url=stored.pay_url,
            qr_payload=stored.qr_payload,
            status=stored.status,
        )

    # ---------------------------------------------------------------- callback

    def _check_freshness(self, raw_timestamp: str) -> None:
        sent_at = parse_gateway_timestamp(raw_timestamp)
        skew = abs((self._clock() - sent_at).total_seconds())
        if skew > self.tolerance_seconds:
            raise StaleRequestException(raw_timestamp, self.tolerance_seconds)

    def _check_amount(self, order: Order, raw_amount: Optional[str], *, source: str) -> None:
        if not raw_amount:
            return
        try:
            matches = Decimal(raw_amount) == order.amount
        except InvalidOperation:
            matches = False
        if not matches:
            logger.error(
                "order_reconciliation_alert",
                reason="amount_mismatch",
                source=source,
                order_id=order.order_id,
                expected_amount=str(order.amount),
                reported_amount=raw_amount,
            )

    async def _apply_gateway_status(
        self,
        order: Order,
        target: OrderStatus,
        patch: OrderPatch,
        *,
        source: str,
    ) -> Order:
        """Apply a status reported by the gateway; conflicts are logged, never raised."""
        reported = patch.platform_order_id
        if reported and order.platform_order_id and reported != order.platform_order_id:
            logger.error(
                "order_reconciliation_alert",
                reason="platform_order_id_mismatch",
                source=source,
                order_id=order.order_id,
                stored_platform_order_id=order.platform_order_id,
                reported_platform_order_id=reported,
            )
            return order

        expected: Iterable[OrderStatus] = (
            NON_TERMINAL_STATUSES if target in TERMINAL_STATUSES else {OrderStatus.CREATED}
        )
        try:
            updated = await self.store.transition(order.order_id, expected, target, patch)
        except OrderStatusConflictException as exc:
            current = exc.current
            if current.status == target:
                logger.info("gateway_status_duplicate", source=source, order_id=order.order_id, status=target.value)
            elif target not in TERMINAL_STATUSES:
                # late PENDING notification for an order that already moved on
                logger.info(
                    "gateway_status_superseded",
                    source=source,
                    order_id=order.order_id,
                    status=current.status.value,
                    reported_status=target.value,
                )
            else:
                logger.error(
                    "order_reconciliation_alert",
                    reason="terminal_status_mismatch",
                    source=source,
                    order_id=order.order_id,
                    stored_status=current.status.value,
                    reported_status=target.value,
                )
            return current
        except OrderFieldImmutableException as exc:
            logger.error(
                "order_reconciliation_alert",
                reason="write_once_field_mismatch",
                source=source,
                order_id=order.order_id,
                field=exc.field,
            )
            return await self.store.get(order.order_id) or order

        logger.info(
            "gateway_status_applied",
            source=source,
            order_id=order.order_id,
            from_status=order.status.value,
            to_status=updated.status.value,
        )
        return updated

    async def handle_callback(self, payload: Mapping[str, str]) -> str:
        """Verify and apply a gateway callback; returns the acknowledgment sentinel.

        Raises InvalidSignatureException, StaleRequestException or
        DomainValidationException for requests the gateway should see rejected.
        """
        order_id = payload.get("orderId") or None
        if payload.get("mchId") != self.merchant_id:
            logger.warning("callback_rejected", reason="merchant_mismatch", order_id=order_id)
            raise InvalidSignatureException("merchant mismatch", order_id=order_id)
        if not self.codec.verify(payload, required=CALLBACK_REQUIRED_FIELDS):
            logger.warning("callback_rejected", reason="signature_mismatch", order_id=order_id)
            raise InvalidSignatureException(order_id=order_id)
        try:
            self._check_freshness(payload["timestamp"])
        except StaleRequestException:
            logger.warning("callback_rejected", reason="stale", order_id=order_id, timestamp=payload["timestamp"])
            raise

        order = await self.store.get(order_id)
        if order is None:
            logger.warning("callback_unknown_order", order_id=order_id)
            return self.ack

        internal = map_provider_status(self.gateway.provider, payload["status"])
        if internal is None:
            logger.warning("callback_rejected", reason="unknown_status", order_id=order_id, status=payload["status"])
            raise DomainValidationException(f"Unknown callback status: {payload['status']}", field="status")
        target = OrderStatus(internal)

        self._check_amount(order, payload.get("amount"), source="callback")
        patch = OrderPatch(
            platform_order_id=payload.get("platformOrderId") or None,
            last_callback_payload=dict(payload),
        )
        if target in TERMINAL_STATUSES:
            patch.completed_at = self._clock()
        await self._apply_gateway_status(order, target, patch, source="callback")
        return self.ack

    # --------------------------------------------------------------- reconcile

    async def reconcile(self, order_id: str, utr: Optional[str] = None) -> ReconcileResult:
        if utr is not None and not is_valid_utr(utr):
            raise DomainValidationException("UTR must be exactly 12 digits", field="utr")

        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)

        if utr is not None:
            if order.utr is None:
                try:
                    order = await self.store.transition(order_id, ALL_STATUSES, None, OrderPatch(utr=utr))
                    logger.info("utr_recorded", order_id=order_id, status=order.status.value)
                except OrderFieldImmutableException:
                    order = await self.store.get(order_id) or order
                    logger.warning("utr_resubmitted", order_id=order_id, reason="concurrent_submission")
            elif order.utr != utr:
                logger.warning("utr_resubmitted", order_id=order_id, reason="different_value")

        return ReconcileResult(status=to_reconcile_status(order.status))

    async def get_order(self, order_id: str) -> OrderView:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return OrderView(
            order_id=order.order_id,
            status=order.status,
            amount=order.amount,
            currency=order.currency,
            pay_type=order.pay_type,
            platform_order_id=order.platform_order_id,
            pay_url=order.pay_url,
            qr_payload=order.qr_payload,
            utr=order.utr,
            created_at=order.created_at,
            updated_at=order.updated_at,
            completed_at=order.completed_at,
        )

    # ----------------------------------------------------------------- refresh

    def _parse_completed_at(self, raw: Optional[str]) -> datetime:
        if raw:
            try:
                return parse_gateway_timestamp(raw)
            except DomainValidationException:
                pass
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                parsed = None
            if parsed is not None:
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return self._clock()

    async def refresh(self, order_id: str) -> RefreshResult:
        """Re-query the gateway for a non-terminal order."""
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.is_final_status():
            return RefreshResult(order_id=order_id, status=order.status, refreshed=False)

        params = self.codec.signed({
            "mchId": self.merchant_id,
            "orderId": order_id,
            "timestamp": format_gateway_timestamp(self._clock()),
        })
        try:
            result = await self.gateway.query_order(params)
        except PaymentProviderError as exc:
            logger.warning("order_refresh_failed", order_id=order_id, error=exc.message)
            return RefreshResult(order_id=order_id, status=order.status, refreshed=False)

        internal = map_provider_status(self.gateway.provider, result.status)
        if internal is None:
            logger.warning("order_refresh_unknown_status", order_id=order_id, status=result.status)
            return RefreshResult(order_id=order_id, status=order.status, refreshed=False)
        target = OrderStatus(internal)

        if result.actual_amount is not None:
            self._check_amount(order, str(result.actual_amount), source="query")
        patch = OrderPatch(platform_order_id=result.platform_order_id)
        if target in TERMINAL_STATUSES:
            patch.completed_at = self._parse_completed_at(result.completed_at)
        if target != order.status:
            order = await self._apply_gateway_status(order, target, patch, source="query")

        return RefreshResult(order_id=order_id, status=order.status, refreshed=True)
