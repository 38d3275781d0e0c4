"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import (
    PaymentRequestNotFoundException,
    SubscriptionNotFoundException,
    TransactionNotFoundException,
)
from domain.payment.entity import (
    AutoPaymentConfig,
    CreditAdjustment,
    GatewayWebhookLog,
    PaymentGateway,
    PaymentMethod,
    PaymentRequest,
    PaymentSubscription,
    Transaction,
    TransactionType,
)
from domain.payment.repository import (
    AutoPaymentRepository,
    CreditAdjustmentRepository,
    GatewayRepository,
    GatewayWebhookLogRepository,
    PaymentMethodRepository,
    PaymentRequestRepository,
    SubscriptionRepository,
    TransactionRepository,
)
from infrastructure.models.payment import (
    AutoPaymentModel,
    CreditAdjustmentModel,
    GatewayWebhookLogModel,
    PaymentGatewayModel,
    PaymentMethodModel,
    PaymentRequestModel,
    PaymentSubscriptionModel,
    TransactionModel,
)

logger = get_logger(__name__)


def _locked(stmt, for_update: bool):
    if for_update:
        return stmt.with_for_update().execution_options(populate_existing=True)
    return stmt


class SQLAlchemyGatewayRepository(GatewayRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentGatewayModel) -> PaymentGateway:
        return PaymentGateway(
            id=model.id,
            name=model.name,
            slug=model.slug,
            display_name=model.display_name,
            active=model.active,
            visible=model.visible,
            supports_refund=model.supports_refund,
            supports_recurring=model.supports_recurring,
            supports_tokenize=model.supports_tokenize,
            fee_percent=model.fee_percent,
            fee_fixed=model.fee_fixed,
            min_amount=model.min_amount,
            max_amount=model.max_amount,
            sort_order=model.sort_order,
        )

    async def create(self, gateway: PaymentGateway) -> PaymentGateway:
        model = PaymentGatewayModel(
            name=gateway.name,
            slug=gateway.slug,
            display_name=gateway.display_name,
            active=gateway.active,
            visible=gateway.visible,
            supports_refund=gateway.supports_refund,
            supports_recurring=gateway.supports_recurring,
            supports_tokenize=gateway.supports_tokenize,
            fee_percent=gateway.fee_percent,
            fee_fixed=gateway.fee_fixed,
            min_amount=gateway.min_amount,
            max_amount=gateway.max_amount,
            sort_order=gateway.sort_order,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, gateway_id: int) -> Optional[PaymentGateway]:
        model = await self.session.get(PaymentGatewayModel, gateway_id)
        return self._to_entity(model) if model else None

    async def get_by_slug(self, slug: str) -> Optional[PaymentGateway]:
        result = await self.session.execute(select(PaymentGatewayModel).where(PaymentGatewayModel.slug == slug))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_active(self) -> List[PaymentGateway]:
        result = await self.session.execute(
            select(PaymentGatewayModel)
            .where(PaymentGatewayModel.active.is_(True), PaymentGatewayModel.visible.is_(True))
            .order_by(PaymentGatewayModel.sort_order, PaymentGatewayModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyPaymentRequestRepository(PaymentRequestRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentRequestModel) -> PaymentRequest:
        return PaymentRequest(
            id=model.id,
            customer_id=model.customer_id,
            gateway_id=model.gateway_id,
            amount=model.amount,
            currency=model.currency,
            status=model.status,
            invoice_id=model.invoice_id,
            gateway_ref=model.gateway_ref,
            payment_url=model.payment_url,
            error_message=model.error_message,
            ip_address=model.ip_address,
            transaction_id=model.transaction_id,
            expires_at=model.expires_at,
            processed_at=model.processed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply(self, model: PaymentRequestModel, request: PaymentRequest) -> None:
        model.status = request.status.value
        model.gateway_ref = request.gateway_ref
        model.payment_url = request.payment_url
        model.error_message = request.error_message
        model.transaction_id = request.transaction_id
        model.processed_at = request.processed_at

    async def create(self, request: PaymentRequest) -> PaymentRequest:
        model = PaymentRequestModel(
            customer_id=request.customer_id,
            invoice_id=request.invoice_id,
            gateway_id=request.gateway_id,
            amount=request.amount,
            currency=request.currency,
            ip_address=request.ip_address,
            expires_at=request.expires_at,
        )
        self._apply(model, request)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, request_id: int, *, for_update: bool = False) -> Optional[PaymentRequest]:
        result = await self.session.execute(
            _locked(select(PaymentRequestModel).where(PaymentRequestModel.id == request_id), for_update)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, request: PaymentRequest) -> PaymentRequest:
        model = await self.session.get(PaymentRequestModel, request.id)
        if model is None:
            raise PaymentRequestNotFoundException(request.id)
        self._apply(model, request)
        await self.session.flush()
        return self._to_entity(model)


class SQLAlchemyTransactionRepository(TransactionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransactionModel) -> Transaction:
        return Transaction(
            id=model.id,
            customer_id=model.customer_id,
            transaction_type=model.transaction_type,
            status=model.status,
            currency=model.currency,
            amount=model.amount,
            fee=model.fee,
            invoice_id=model.invoice_id,
            gateway=model.gateway,
            gateway_trans_id=model.gateway_trans_id,
            description=model.description,
            refunded_amount=model.refunded_amount,
            refund_of_id=model.refund_of_id,
            ip_address=model.ip_address,
            metadata=model.extra_metadata or {},
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, transaction: Transaction) -> Transaction:
        model = TransactionModel(
            customer_id=transaction.customer_id,
            invoice_id=transaction.invoice_id,
            transaction_type=transaction.transaction_type.value,
            status=transaction.status.value,
            currency=transaction.currency,
            amount=transaction.amount,
            fee=transaction.fee,
            gateway=transaction.gateway,
            gateway_trans_id=transaction.gateway_trans_id,
            description=transaction.description,
            refunded_amount=transaction.refunded_amount,
            refund_of_id=transaction.refund_of_id,
            ip_address=transaction.ip_address,
            extra_metadata=transaction.metadata or None,
        )
        if transaction.created_at is not None:
            model.created_at = transaction.created_at
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "transaction_recorded",
            transaction_id=model.id,
            type=model.transaction_type,
            amount=str(transaction.amount),
            customer_id=model.customer_id,
        )
        return self._to_entity(model)

    async def get_by_id(self, transaction_id: int, *, for_update: bool = False) -> Optional[Transaction]:
        result = await self.session.execute(
            _locked(select(TransactionModel).where(TransactionModel.id == transaction_id), for_update)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update_refund_state(self, transaction: Transaction) -> Transaction:
        model = await self.session.get(TransactionModel, transaction.id)
        if model is None:
            raise TransactionNotFoundException(transaction.id)
        model.refunded_amount = transaction.refunded_amount
        model.status = transaction.status.value
        await self.session.flush()
        return self._to_entity(model)

    async def list_refunds(self, transaction_id: int) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.refund_of_id == transaction_id,
                TransactionModel.transaction_type == TransactionType.REFUND.value,
            )
            .order_by(TransactionModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_payments_for_invoice(self, invoice_id: int, *, for_update: bool = False) -> List[Transaction]:
        result = await self.session.execute(
            _locked(
                select(TransactionModel)
                .where(
                    TransactionModel.invoice_id == invoice_id,
                    TransactionModel.transaction_type == TransactionType.PAYMENT.value,
                )
                .order_by(TransactionModel.id),
                for_update,
            )
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_customer(self, customer_id: int, skip: int = 0, limit: int = 100) -> List[Transaction]:
        result = await self.session.execute(
            select(TransactionModel)
            .where(TransactionModel.customer_id == customer_id)
            .order_by(TransactionModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyCreditAdjustmentRepository(CreditAdjustmentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CreditAdjustmentModel) -> CreditAdjustment:
        return CreditAdjustment(
            id=model.id,
            customer_id=model.customer_id,
            adjustment_type=model.adjustment_type,
            amount=model.amount,
            currency=model.currency,
            balance_before=model.balance_before,
            balance_after=model.balance_after,
            reason=model.reason,
            related_type=model.related_type,
            related_id=model.related_id,
            staff_id=model.staff_id,
            created_at=model.created_at,
        )

    async def create(self, adjustment: CreditAdjustment) -> CreditAdjustment:
        model = CreditAdjustmentModel(
            customer_id=adjustment.customer_id,
            adjustment_type=adjustment.adjustment_type.value,
            amount=adjustment.amount,
            currency=adjustment.currency,
            balance_before=adjustment.balance_before,
            balance_after=adjustment.balance_after,
            reason=adjustment.reason,
            related_type=adjustment.related_type,
            related_id=adjustment.related_id,
            staff_id=adjustment.staff_id,
        )
        if adjustment.created_at is not None:
            model.created_at = adjustment.created_at
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def list_by_customer(self, customer_id: int, limit: int = 100) -> List[CreditAdjustment]:
        result = await self.session.execute(
            select(CreditAdjustmentModel)
            .where(CreditAdjustmentModel.customer_id == customer_id)
            .order_by(CreditAdjustmentModel.id.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemySubscriptionRepository(SubscriptionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentSubscriptionModel) -> PaymentSubscription:
        return PaymentSubscription(
            id=model.id,
            customer_id=model.customer_id,
            gateway_id=model.gateway_id,
            amount=model.amount,
            currency=model.currency,
            interval=model.interval,
            interval_count=model.interval_count,
            status=model.status,
            service_id=model.service_id,
            gateway_sub_id=model.gateway_sub_id,
            payment_method=model.payment_method,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            cancel_at_period_end=model.cancel_at_period_end,
            cancelled_at=model.cancelled_at,
            ended_at=model.ended_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply(self, model: PaymentSubscriptionModel, subscription: PaymentSubscription) -> None:
        model.status = subscription.status.value
        model.gateway_sub_id = subscription.gateway_sub_id
        model.current_period_start = subscription.current_period_start
        model.current_period_end = subscription.current_period_end
        model.cancel_at_period_end = subscription.cancel_at_period_end
        model.cancelled_at = subscription.cancelled_at
        model.ended_at = subscription.ended_at

    async def create(self, subscription: PaymentSubscription) -> PaymentSubscription:
        model = PaymentSubscriptionModel(
            customer_id=subscription.customer_id,
            service_id=subscription.service_id,
            gateway_id=subscription.gateway_id,
            payment_method=subscription.payment_method,
            amount=subscription.amount,
            currency=subscription.currency,
            interval=subscription.interval,
            interval_count=subscription.interval_count,
        )
        self._apply(model, subscription)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, subscription_id: int, *, for_update: bool = False) -> Optional[PaymentSubscription]:
        result = await self.session.execute(
            _locked(select(PaymentSubscriptionModel).where(PaymentSubscriptionModel.id == subscription_id), for_update)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, subscription: PaymentSubscription) -> PaymentSubscription:
        model = await self.session.get(PaymentSubscriptionModel, subscription.id)
        if model is None:
            raise SubscriptionNotFoundException(subscription.id)
        self._apply(model, subscription)
        await self.session.flush()
        return self._to_entity(model)


class SQLAlchemyGatewayWebhookLogRepository(GatewayWebhookLogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, log: GatewayWebhookLog) -> GatewayWebhookLog:
        model = GatewayWebhookLogModel(
            gateway_id=log.gateway_id,
            event_type=log.event_type,
            payload=log.payload,
            status=log.status,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return GatewayWebhookLog(
            id=model.id,
            gateway_id=model.gateway_id,
            event_type=model.event_type,
            payload=model.payload,
            status=model.status,
            created_at=model.created_at,
        )


class SQLAlchemyPaymentMethodRepository(PaymentMethodRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentMethodModel) -> PaymentMethod:
        return PaymentMethod(
            id=model.id,
            customer_id=model.customer_id,
            method_type=model.method_type,
            gateway=model.gateway,
            gateway_method_id=model.gateway_method_id,
            label=model.label,
            last4=model.last4,
            brand=model.brand,
            expiry_month=model.expiry_month,
            expiry_year=model.expiry_year,
            is_default=model.is_default,
            active=model.active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, method: PaymentMethod) -> PaymentMethod:
        model = PaymentMethodModel(
            customer_id=method.customer_id,
            method_type=method.method_type.value,
            gateway=method.gateway,
            gateway_method_id=method.gateway_method_id,
            label=method.label,
            last4=method.last4,
            brand=method.brand,
            expiry_month=method.expiry_month,
            expiry_year=method.expiry_year,
            is_default=method.is_default,
            active=method.active,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_for_customer(self, customer_id: int, method_id: int) -> Optional[PaymentMethod]:
        result = await self.session.execute(
            select(PaymentMethodModel).where(
                PaymentMethodModel.id == method_id,
                PaymentMethodModel.customer_id == customer_id,
            )
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_customer(self, customer_id: int) -> List[PaymentMethod]:
        result = await self.session.execute(
            select(PaymentMethodModel)
            .where(PaymentMethodModel.customer_id == customer_id)
            .order_by(PaymentMethodModel.is_default.desc(), PaymentMethodModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def clear_default(self, customer_id: int) -> None:
        await self.session.execute(
            update(PaymentMethodModel)
            .where(PaymentMethodModel.customer_id == customer_id, PaymentMethodModel.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )

    async def set_default(self, customer_id: int, method_id: int) -> bool:
        result = await self.session.execute(
            update(PaymentMethodModel)
            .where(PaymentMethodModel.id == method_id, PaymentMethodModel.customer_id == customer_id)
            .values(is_default=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(self, customer_id: int, method_id: int) -> bool:
        result = await self.session.execute(
            delete(PaymentMethodModel)
            .where(PaymentMethodModel.id == method_id, PaymentMethodModel.customer_id == customer_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SQLAlchemyAutoPaymentRepository(AutoPaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: AutoPaymentModel) -> AutoPaymentConfig:
        return AutoPaymentConfig(
            id=model.id,
            customer_id=model.customer_id,
            payment_method_id=model.payment_method_id,
            active=model.active,
            max_amount=model.max_amount,
            days_before=model.days_before,
            last_attempt=model.last_attempt,
            last_success=model.last_success,
            consecutive_fails=model.consecutive_fails,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_by_customer(self, customer_id: int, *, for_update: bool = False) -> Optional[AutoPaymentConfig]:
        result = await self.session.execute(
            _locked(select(AutoPaymentModel).where(AutoPaymentModel.customer_id == customer_id), for_update)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, config: AutoPaymentConfig) -> AutoPaymentConfig:
        result = await self.session.execute(
            select(AutoPaymentModel).where(AutoPaymentModel.customer_id == config.customer_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = AutoPaymentModel(customer_id=config.customer_id)
            self.session.add(model)
        model.payment_method_id = config.payment_method_id
        model.active = config.active
        model.max_amount = config.max_amount
        model.days_before = config.days_before
        model.last_attempt = config.last_attempt
        model.last_success = config.last_success
        model.consecutive_fails = config.consecutive_fails
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)
