"""
Application service orchestrating payment use-cases.

Processor implementations live in infrastructure and reach this service
through a PaymentProcessorRegistry built at the composition root; the service
resolves a processor by the slug stored on the gateway record and only
interprets the uniform result DTOs.

Ledger writes (credit balance + adjustment, refund + counter, transaction +
invoice) always commit inside one unit of work. Gateway calls for charges run
outside the database transaction: the request is first claimed as
``processing`` under a row lock, then finalized in a second unit.
"""
from __future__ import annotations

import json
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from application.dtos.payments import CardDetails, ChargeRequest, PaymentResult, SubscriptionRequest
from application.ports.payment_gateway import PaymentProcessor
from application.ports.webhook_scheduler import EventPublisher
from application.services.processor_registry import PaymentProcessorRegistry
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    ConfigurationException,
    CustomerNotFoundException,
    GatewayInactiveException,
    GatewayNotFoundException,
    InvalidAmountException,
    InvalidWebhookSignatureException,
    InvoiceNotFoundException,
    PaymentGatewayError,
    PaymentMethodNotFoundException,
    PaymentRequestExpiredException,
    PaymentRequestNotFoundException,
    RecurringNotSupportedException,
    RefundExceedsRemainingException,
    RefundNotSupportedException,
    StateConflictException,
    SubscriptionNotFoundException,
    TransactionNotFoundException,
    TransactionNotRefundableException,
)
from domain.common.money import ZERO, to_decimal
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import (
    CREDIT_BALANCE_GATEWAY,
    AutoPaymentConfig,
    CreditAdjustment,
    GatewayWebhookLog,
    PaymentGateway,
    PaymentMethod,
    PaymentMethodType,
    PaymentRequest,
    PaymentRequestStatus,
    PaymentSubscription,
    Transaction,
    TransactionType,
)
from domain.payment.events import PaymentCompleted, PaymentFailed
from domain.payment.service import PaymentLedgerService

logger = get_logger(__name__)


def _ledger(uow: AbstractUnitOfWork) -> PaymentLedgerService:
    return PaymentLedgerService(
        uow.customer_repository,
        uow.credit_adjustment_repository,
        uow.transaction_repository,
        uow.invoice_repository,
    )


def _settled_status(result: PaymentResult) -> PaymentRequestStatus:
    """处理器结果 → 支付请求状态；未知状态按失败处理"""
    try:
        status = PaymentRequestStatus(result.status)
    except ValueError:
        return PaymentRequestStatus.FAILED
    if status == PaymentRequestStatus.COMPLETED and not result.success:
        return PaymentRequestStatus.FAILED
    if result.success and status != PaymentRequestStatus.PENDING:
        return PaymentRequestStatus.COMPLETED
    return status


def _positive(amount: Decimal) -> Decimal:
    amount = to_decimal(amount)
    if amount <= ZERO:
        raise InvalidAmountException(amount)
    return amount


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        registry: PaymentProcessorRegistry,
        publisher: Optional[EventPublisher] = None,
        *,
        request_ttl: Optional[timedelta] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.registry = registry
        self._publisher = publisher
        self._request_ttl = request_ttl or timedelta(hours=payment_settings.request_expiry_hours)

    async def _publish(self, events: List[DomainEvent]) -> None:
        if self._publisher is not None and events:
            await self._publisher.publish(events)

    # ------------------------------------------------------------------
    # Gateways
    # ------------------------------------------------------------------
    async def list_active_gateways(self) -> List[PaymentGateway]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.gateway_repository.list_active()

    async def get_gateway(self, slug: str) -> PaymentGateway:
        async with self._uow_factory(readonly=True) as uow:
            gateway = await uow.gateway_repository.get_by_slug(slug)
        if gateway is None:
            raise GatewayNotFoundException(slug, field="gateway")
        return gateway

    async def _active_gateway(self, uow: AbstractUnitOfWork, slug: str) -> PaymentGateway:
        gateway = await uow.gateway_repository.get_by_slug(slug)
        if gateway is None:
            raise GatewayNotFoundException(slug, field="gateway")
        if not gateway.active:
            raise GatewayInactiveException(slug)
        return gateway

    def _processor(self, gateway: PaymentGateway) -> PaymentProcessor:
        return self.registry.get(gateway.slug)

    # ------------------------------------------------------------------
    # Payment requests
    # ------------------------------------------------------------------
    async def create_payment_request(
        self,
        *,
        customer_id: int,
        gateway_slug: str,
        amount: Decimal,
        currency: str = "USD",
        invoice_id: Optional[int] = None,
        ip_address: Optional[str] = None,
    ) -> PaymentRequest:
        amount = _positive(amount)
        async with self._uow_factory() as uow:
            gateway = await self._active_gateway(uow, gateway_slug)
            if gateway.min_amount is not None and amount < gateway.min_amount:
                raise InvalidAmountException(amount)
            if gateway.max_amount is not None and amount > gateway.max_amount:
                raise InvalidAmountException(amount)
            if await uow.customer_repository.get_by_id(customer_id) is None:
                raise CustomerNotFoundException(customer_id)
            if invoice_id is not None and await uow.invoice_repository.get_by_id(invoice_id) is None:
                raise InvoiceNotFoundException(invoice_id)
            request = await uow.payment_request_repository.create(
                PaymentRequest.open(
                    customer_id=customer_id,
                    gateway_id=gateway.id,
                    amount=amount,
                    currency=currency.upper(),
                    invoice_id=invoice_id,
                    ip_address=ip_address,
                    ttl=self._request_ttl,
                )
            )
        logger.info(
            "payment_request_created",
            request_id=request.id,
            customer_id=customer_id,
            gateway=gateway_slug,
            amount=str(amount),
            expires_at=request.expires_at.isoformat(),
        )
        return request

    async def get_payment_request(self, request_id: int) -> PaymentRequest:
        async with self._uow_factory(readonly=True) as uow:
            request = await uow.payment_request_repository.get_by_id(request_id)
        if request is None:
            raise PaymentRequestNotFoundException(request_id)
        return request

    def _charge(self, request: PaymentRequest, card_token: Optional[str] = None) -> ChargeRequest:
        return ChargeRequest(
            request_id=request.id,
            customer_id=request.customer_id,
            amount=request.amount,
            currency=request.currency,
            invoice_id=request.invoice_id,
            description=f"Payment request #{request.id}",
            card_token=card_token,
            ip_address=request.ip_address,
        )

    async def process_payment(self, request_id: int, *, card_token: Optional[str] = None) -> PaymentRequest:
        """
        执行一次网关扣款

        1. 加锁读取请求：过期则标记 expired 并报错；否则置为 processing
        2. 事务外调用处理器
        3. 处理器异常：请求置为 failed 并记录错误，异常继续抛出
        4. 成功：同一事务内写入已完成交易、关联请求、入账账单
        """
        expired = False
        async with self._uow_factory() as uow:
            request = await uow.payment_request_repository.get_by_id(request_id, for_update=True)
            if request is None:
                raise PaymentRequestNotFoundException(request_id)
            gateway = await uow.gateway_repository.get_by_id(request.gateway_id)
            if gateway is None:
                raise GatewayNotFoundException(request.gateway_id)
            if request.status == PaymentRequestStatus.EXPIRED:
                raise PaymentRequestExpiredException(request_id)
            if request.status == PaymentRequestStatus.PENDING and request.is_expired():
                request.mark_expired()
                await uow.payment_request_repository.update(request)
                expired = True
            else:
                if not gateway.active:
                    raise GatewayInactiveException(gateway.slug)
                processor = self._processor(gateway)
                request.mark_processing()
                await uow.payment_request_repository.update(request)

        if expired:
            logger.warning("payment_request_expired", request_id=request_id, expires_at=request.expires_at.isoformat())
            raise PaymentRequestExpiredException(request_id)

        try:
            result = await processor.process_payment(self._charge(request, card_token))
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            async with self._uow_factory() as uow:
                failed = await uow.payment_request_repository.get_by_id(request_id, for_update=True)
                failed.mark_failed(message)
                await uow.payment_request_repository.update(failed)
            logger.error("payment_failed", request_id=request_id, gateway=gateway.slug, error=message)
            await self._publish(
                [PaymentFailed(request_id=request_id, customer_id=request.customer_id, gateway=gateway.slug, reason=message)]
            )
            raise

        status = _settled_status(result)
        events: List[DomainEvent] = []
        async with self._uow_factory() as uow:
            request = await uow.payment_request_repository.get_by_id(request_id, for_update=True)
            if result.redirect_url:
                request.payment_url = result.redirect_url
            if status == PaymentRequestStatus.COMPLETED:
                ledger = _ledger(uow)
                amount = to_decimal(result.amount) if result.amount else request.amount
                fee = to_decimal(result.fee) if result.fee is not None else gateway.calculate_fee(amount)
                transaction = await ledger.record_payment(
                    customer_id=request.customer_id,
                    amount=amount,
                    currency=request.currency,
                    gateway=gateway.slug,
                    fee=fee,
                    invoice_id=request.invoice_id,
                    gateway_trans_id=result.transaction_id,
                    description=f"Payment request #{request.id}",
                    ip_address=request.ip_address,
                )
                request.mark_settled(status, gateway_ref=result.transaction_id, transaction_id=transaction.id)
                if request.invoice_id is not None:
                    invoice = await uow.invoice_repository.get_by_id(request.invoice_id, for_update=True)
                    if invoice is not None and invoice.is_payable:
                        await ledger.apply_to_invoice(invoice, amount)
                    else:
                        logger.warning("payment_invoice_not_payable", request_id=request_id, invoice_id=request.invoice_id)
                events.append(
                    PaymentCompleted(
                        transaction_id=transaction.id,
                        customer_id=request.customer_id,
                        amount=amount,
                        currency=request.currency,
                        gateway=gateway.slug,
                        invoice_id=request.invoice_id,
                    )
                )
                events.extend(ledger.events)
            else:
                request.mark_settled(status, gateway_ref=result.transaction_id)
                if status == PaymentRequestStatus.FAILED:
                    request.error_message = result.message or "Payment declined"
                    events.append(
                        PaymentFailed(
                            request_id=request_id,
                            customer_id=request.customer_id,
                            gateway=gateway.slug,
                            reason=request.error_message,
                        )
                    )
            request = await uow.payment_request_repository.update(request)

        logger.info(
            "payment_processed",
            request_id=request_id,
            gateway=gateway.slug,
            status=request.status.value,
            transaction_id=request.transaction_id,
        )
        await self._publish(events)
        return request

    async def get_payment_url(self, request_id: int) -> str:
        async with self._uow_factory(readonly=True) as uow:
            request = await uow.payment_request_repository.get_by_id(request_id)
            if request is None:
                raise PaymentRequestNotFoundException(request_id)
            gateway = await uow.gateway_repository.get_by_id(request.gateway_id)
        if gateway is None:
            raise GatewayNotFoundException(request.gateway_id)
        if request.is_expired():
            raise PaymentRequestExpiredException(request_id)
        url = await self._processor(gateway).get_payment_url(self._charge(request))
        async with self._uow_factory() as uow:
            request = await uow.payment_request_repository.get_by_id(request_id, for_update=True)
            request.payment_url = url
            await uow.payment_request_repository.update(request)
        return url

    # ------------------------------------------------------------------
    # Credit balance
    # ------------------------------------------------------------------
    async def pay_with_credit(self, customer_id: int, invoice_id: int, amount: Decimal) -> Transaction:
        """余额支付：扣余额 + 审计记录 + 交易 + 账单入账，一个事务"""
        amount = _positive(amount)
        async with self._uow_factory() as uow:
            customer = await uow.customer_repository.get_by_id(customer_id, for_update=True)
            if customer is None:
                raise CustomerNotFoundException(customer_id)
            invoice = await uow.invoice_repository.get_by_id(invoice_id, for_update=True)
            if invoice is None or invoice.customer_id != customer_id:
                raise InvoiceNotFoundException(invoice_id)

            ledger = _ledger(uow)
            await ledger.deduct_credit(
                customer,
                amount,
                currency=invoice.currency,
                reason=f"Payment for invoice {invoice.invoice_number}",
                related_type="invoice",
                related_id=invoice.id,
            )
            transaction = await ledger.record_payment(
                customer_id=customer_id,
                amount=amount,
                currency=invoice.currency,
                gateway=CREDIT_BALANCE_GATEWAY,
                transaction_type=TransactionType.CREDIT,
                invoice_id=invoice.id,
                description=f"Credit applied to invoice {invoice.invoice_number}",
            )
            await ledger.apply_to_invoice(invoice, amount)

        logger.info(
            "credit_deducted",
            customer_id=customer_id,
            invoice_id=invoice_id,
            amount=str(amount),
            balance=str(customer.credit),
        )
        await self._publish(ledger.events)
        return transaction

    async def add_credit(
        self,
        customer_id: int,
        amount: Decimal,
        *,
        currency: str = "USD",
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
    ) -> CreditAdjustment:
        amount = _positive(amount)
        async with self._uow_factory() as uow:
            customer = await uow.customer_repository.get_by_id(customer_id, for_update=True)
            if customer is None:
                raise CustomerNotFoundException(customer_id)
            ledger = _ledger(uow)
            adjustment = await ledger.add_credit(
                customer,
                amount,
                currency=currency.upper(),
                reason=reason,
                staff_id=staff_id,
            )
        logger.info(
            "credit_added",
            customer_id=customer_id,
            amount=str(amount),
            balance=str(adjustment.balance_after),
            staff_id=staff_id,
        )
        await self._publish(ledger.events)
        return adjustment

    async def get_credit_history(self, customer_id: int, limit: int = 100) -> List[CreditAdjustment]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.credit_adjustment_repository.list_by_customer(customer_id, limit)

    # ------------------------------------------------------------------
    # Transactions & refunds
    # ------------------------------------------------------------------
    async def get_transaction(self, transaction_id: int) -> Transaction:
        async with self._uow_factory(readonly=True) as uow:
            transaction = await uow.transaction_repository.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundException(transaction_id)
        return transaction

    async def list_customer_transactions(self, customer_id: int, skip: int = 0, limit: int = 100) -> List[Transaction]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.transaction_repository.list_by_customer(customer_id, skip=skip, limit=limit)

    async def process_refund(
        self,
        transaction_id: int,
        amount: Decimal,
        *,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
        via_gateway: bool = False,
    ) -> Transaction:
        """
        退款：原交易行加锁，校验可退与剩余可退金额后写入负数退款流水并累加计数

        via_gateway=True 时先调用网关退款，网关失败则整体不生效。
        """
        amount = _positive(amount)
        async with self._uow_factory() as uow:
            original = await uow.transaction_repository.get_by_id(transaction_id, for_update=True)
            if original is None:
                raise TransactionNotFoundException(transaction_id)
            if not original.is_refundable():
                raise TransactionNotRefundableException(transaction_id)
            if amount > original.remaining_refundable:
                raise RefundExceedsRemainingException(amount, original.remaining_refundable)

            gateway_ref: Optional[str] = None
            if via_gateway:
                gateway = await uow.gateway_repository.get_by_slug(original.gateway or "")
                if gateway is None:
                    raise GatewayNotFoundException(original.gateway, field="gateway")
                if not gateway.supports_refund:
                    raise RefundNotSupportedException(gateway.slug)
                result = await self._processor(gateway).process_refund(
                    original.gateway_trans_id or "", amount, original.currency
                )
                if not result.success:
                    raise PaymentGatewayError(result.message or "Refund rejected", gateway=gateway.slug)
                gateway_ref = result.refund_id

            ledger = _ledger(uow)
            refund = await ledger.refund(
                original,
                amount,
                reason=reason,
                staff_id=staff_id,
                gateway_trans_id=gateway_ref,
            )

        logger.info(
            "refund_processed",
            transaction_id=transaction_id,
            refund_id=refund.id,
            amount=str(amount),
            remaining=str(original.remaining_refundable),
            via_gateway=via_gateway,
            staff_id=staff_id,
        )
        await self._publish(ledger.events)
        return refund

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------
    async def create_subscription(
        self,
        *,
        customer_id: int,
        gateway_slug: str,
        amount: Decimal,
        currency: str = "USD",
        interval: str = "month",
        interval_count: int = 1,
        service_id: Optional[int] = None,
        payment_method: Optional[str] = None,
    ) -> PaymentSubscription:
        amount = _positive(amount)
        async with self._uow_factory(readonly=True) as uow:
            gateway = await self._active_gateway(uow, gateway_slug)
            if await uow.customer_repository.get_by_id(customer_id) is None:
                raise CustomerNotFoundException(customer_id)
        if not gateway.supports_recurring:
            raise RecurringNotSupportedException(gateway_slug)
        processor = self._processor(gateway)

        result = await processor.create_subscription(
            SubscriptionRequest(
                customer_id=customer_id,
                amount=amount,
                currency=currency,
                interval=interval,
                interval_count=interval_count,
                payment_method=payment_method,
                service_id=service_id,
            )
        )
        if not result.success:
            raise PaymentGatewayError(result.message or "Subscription rejected", gateway=gateway_slug)

        now = utc_now()
        async with self._uow_factory() as uow:
            subscription = await uow.subscription_repository.create(
                PaymentSubscription(
                    id=None,
                    customer_id=customer_id,
                    gateway_id=gateway.id,
                    amount=amount,
                    currency=currency.upper(),
                    interval=interval,
                    interval_count=interval_count,
                    service_id=service_id,
                    gateway_sub_id=result.subscription_id,
                    payment_method=payment_method,
                    current_period_start=result.current_period_start or now,
                    current_period_end=result.current_period_end,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info(
            "subscription_created",
            subscription_id=subscription.id,
            customer_id=customer_id,
            gateway=gateway_slug,
            gateway_sub_id=subscription.gateway_sub_id,
        )
        return subscription

    async def cancel_subscription(self, subscription_id: int, *, immediately: bool = False) -> PaymentSubscription:
        async with self._uow_factory(readonly=True) as uow:
            subscription = await uow.subscription_repository.get_by_id(subscription_id)
            if subscription is None:
                raise SubscriptionNotFoundException(subscription_id)
            gateway = await uow.gateway_repository.get_by_id(subscription.gateway_id)
        if gateway is None:
            raise GatewayNotFoundException(subscription.gateway_id)
        # 状态校验在调用网关之前完成
        subscription.cancel(immediately=immediately)

        if subscription.gateway_sub_id:
            await self._processor(gateway).cancel_subscription(subscription.gateway_sub_id)

        async with self._uow_factory() as uow:
            current = await uow.subscription_repository.get_by_id(subscription_id, for_update=True)
            current.cancel(immediately=immediately)
            subscription = await uow.subscription_repository.update(current)
        logger.info("subscription_cancelled", subscription_id=subscription_id, immediately=immediately)
        return subscription

    # ------------------------------------------------------------------
    # Saved payment methods & auto-payment
    # ------------------------------------------------------------------
    async def save_payment_method(
        self,
        customer_id: int,
        *,
        method_type: PaymentMethodType,
        gateway: str,
        gateway_method_id: Optional[str] = None,
        label: Optional[str] = None,
        last4: Optional[str] = None,
        brand: Optional[str] = None,
        expiry_month: Optional[int] = None,
        expiry_year: Optional[int] = None,
        is_default: bool = False,
    ) -> PaymentMethod:
        """保存网关侧支付方式；设为默认时同一事务内清除其它默认"""
        method = PaymentMethod(
            id=None,
            customer_id=customer_id,
            method_type=method_type,
            gateway=gateway,
            gateway_method_id=gateway_method_id,
            label=label,
            last4=last4,
            brand=brand,
            expiry_month=expiry_month,
            expiry_year=expiry_year,
            is_default=is_default,
        )
        async with self._uow_factory() as uow:
            if await uow.customer_repository.get_by_id(customer_id) is None:
                raise CustomerNotFoundException(customer_id)
            if is_default:
                await uow.payment_method_repository.clear_default(customer_id)
            method = await uow.payment_method_repository.create(method)
        logger.info(
            "payment_method_saved",
            customer_id=customer_id,
            payment_method_id=method.id,
            method_type=method.method_type.value,
            gateway=gateway,
            is_default=is_default,
        )
        return method

    async def list_payment_methods(self, customer_id: int) -> List[PaymentMethod]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_method_repository.list_by_customer(customer_id)

    async def set_default_payment_method(self, customer_id: int, method_id: int) -> PaymentMethod:
        async with self._uow_factory() as uow:
            method = await uow.payment_method_repository.get_for_customer(customer_id, method_id)
            if method is None:
                raise PaymentMethodNotFoundException(method_id)
            await uow.payment_method_repository.clear_default(customer_id)
            await uow.payment_method_repository.set_default(customer_id, method_id)
        method.is_default = True
        logger.info("payment_method_default_set", customer_id=customer_id, payment_method_id=method_id)
        return method

    async def delete_payment_method(self, customer_id: int, method_id: int) -> None:
        async with self._uow_factory() as uow:
            config = await uow.auto_payment_repository.get_by_customer(customer_id)
            if config is not None and config.payment_method_id == method_id:
                raise StateConflictException(
                    "Payment method is used for auto-payment",
                    details={"payment_method_id": method_id},
                )
            if not await uow.payment_method_repository.delete(customer_id, method_id):
                raise PaymentMethodNotFoundException(method_id)
        logger.info("payment_method_deleted", customer_id=customer_id, payment_method_id=method_id)

    async def get_auto_payment_config(self, customer_id: int) -> Optional[AutoPaymentConfig]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.auto_payment_repository.get_by_customer(customer_id)

    async def setup_auto_payment(
        self,
        customer_id: int,
        payment_method_id: int,
        max_amount: Decimal = ZERO,
        days_before: int = 3,
    ) -> AutoPaymentConfig:
        """
        新增或覆盖客户的自动扣款设置

        支付方式必须属于该客户且可用；覆盖时保留既有的扣款尝试记录。
        """
        async with self._uow_factory() as uow:
            method = await uow.payment_method_repository.get_for_customer(customer_id, payment_method_id)
            if method is None:
                raise PaymentMethodNotFoundException(payment_method_id)
            if not method.active or method.is_expired():
                raise StateConflictException(
                    "Payment method cannot be used for auto-payment",
                    details={"payment_method_id": payment_method_id},
                )
            existing = await uow.auto_payment_repository.get_by_customer(customer_id, for_update=True)
            if existing is None:
                existing = AutoPaymentConfig(id=None, customer_id=customer_id, payment_method_id=payment_method_id)
            config = await uow.auto_payment_repository.save(
                replace(
                    existing,
                    payment_method_id=payment_method_id,
                    max_amount=max_amount,
                    days_before=days_before,
                    active=True,
                )
            )
        logger.info(
            "auto_payment_configured",
            customer_id=customer_id,
            payment_method_id=payment_method_id,
            max_amount=str(config.max_amount),
            days_before=days_before,
        )
        return config

    # ------------------------------------------------------------------
    # Inbound gateway webhooks & tokenization
    # ------------------------------------------------------------------
    async def process_webhook(self, gateway_slug: str, payload: bytes, signature: str) -> GatewayWebhookLog:
        """验签通过后仅记录 received，事件解释由下游异步处理"""
        async with self._uow_factory(readonly=True) as uow:
            gateway = await uow.gateway_repository.get_by_slug(gateway_slug)
        if gateway is None:
            raise GatewayNotFoundException(gateway_slug, field="gateway")
        processor = self._processor(gateway)
        if not processor.validate_webhook(payload, signature or ""):
            logger.warning("gateway_webhook_rejected", gateway=gateway_slug)
            raise InvalidWebhookSignatureException(gateway_slug)

        text = payload.decode("utf-8", errors="replace")
        event_type: Optional[str] = None
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            event_type = parsed.get("type") or parsed.get("event")

        async with self._uow_factory() as uow:
            log = await uow.gateway_webhook_log_repository.create(
                GatewayWebhookLog(
                    id=None,
                    gateway_id=gateway.id,
                    event_type=event_type,
                    payload=text,
                    created_at=utc_now(),
                )
            )
        logger.info("gateway_webhook_accepted", gateway=gateway_slug, log_id=log.id, event_type=event_type)
        return log

    async def tokenize_card(self, gateway_slug: str, card: CardDetails) -> str:
        async with self._uow_factory(readonly=True) as uow:
            gateway = await self._active_gateway(uow, gateway_slug)
        if not gateway.supports_tokenize:
            raise ConfigurationException(
                f"Payment gateway '{gateway_slug}' does not support card tokenization",
                details={"gateway": gateway_slug},
            )
        token = await self._processor(gateway).tokenize_card(card)
        logger.info("card_tokenized", gateway=gateway_slug, last4=card.number[-4:])
        return token
