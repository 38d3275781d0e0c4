"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings. Each test gets a
fresh SQLite database (aiosqlite) with all tables created.
"""
import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CELERY__ALWAYS_EAGER", "true")

from decimal import Decimal
from typing import List, Optional

import pytest
import pytest_asyncio

from application.dtos.payments import (
    CardDetails,
    ChargeRequest,
    PaymentResult,
    RefundResult,
    SubscriptionRequest,
    SubscriptionResult,
)
from application.services.processor_registry import PaymentProcessorRegistry
from infrastructure.database import build_engine, build_session_factory, create_tables
from sqlalchemy import update as sa_update

from infrastructure.models import (
    ConfigOptionModel,
    ConfigSubOptionModel,
    CouponModel,
    CustomerModel,
    PaymentGatewayModel,
    ProductModel,
    ProductPricingModel,
    TaxRuleModel,
)
from infrastructure.unit_of_work import sqlalchemy_uow_factory


class StubProcessor:
    """可编程的处理器替身：按预设结果返回并记录调用"""

    slug = "stub"

    def __init__(self) -> None:
        self.result = PaymentResult(success=True, status="completed", transaction_id="ch_1")
        self.refund_result = RefundResult(success=True, refund_id="re_1")
        self.error: Optional[Exception] = None
        self.charges: List[ChargeRequest] = []
        self.refunds: List[tuple] = []
        self.cancelled: List[str] = []
        self.webhook_valid = True

    async def process_payment(self, req: ChargeRequest) -> PaymentResult:
        self.charges.append(req)
        if self.error is not None:
            raise self.error
        return self.result

    async def process_refund(self, gateway_trans_id: str, amount: Decimal, currency: str) -> RefundResult:
        self.refunds.append((gateway_trans_id, amount, currency))
        return self.refund_result

    async def create_subscription(self, req: SubscriptionRequest) -> SubscriptionResult:
        return SubscriptionResult(success=True, subscription_id="sub_1")

    async def cancel_subscription(self, gateway_sub_id: str) -> None:
        self.cancelled.append(gateway_sub_id)

    def validate_webhook(self, payload: bytes, signature: str) -> bool:
        return self.webhook_valid

    async def tokenize_card(self, card: CardDetails) -> str:
        return f"tok_{card.number[-4:]}"

    async def get_payment_url(self, req: ChargeRequest) -> str:
        return f"https://pay.example.com/{req.request_id}"


class RecordingScheduler:
    """只记录调度请求，不做实际投递"""

    def __init__(self) -> None:
        self.jobs: List[tuple] = []

    async def schedule(self, webhook_id: int, event_type: str, body: str) -> None:
        self.jobs.append((webhook_id, event_type, body))


class RecordingEmailQueue:
    def __init__(self) -> None:
        self.sent: List[dict] = []

    def enqueue_email(self, *, to: str, subject: str, body: str, template: Optional[str] = None) -> None:
        self.sent.append({"to": to, "subject": subject, "body": body, "template": template})


class Seeder:
    """直接写 ORM 模型准备测试数据"""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def _add(self, model):
        async with self._session_factory() as session:
            session.add(model)
            await session.commit()
            await session.refresh(model)
        return model

    async def customer(self, *, email: str = "alice@example.com", country: str = "US", state: str = "CA", credit="0"):
        return await self._add(
            CustomerModel(email=email, first_name="Alice", country=country, state=state, credit=Decimal(credit))
        )

    async def product(self, *, name: str = "Shared Hosting", setup_fee="10", monthly="20", quarterly="-1", currency="USD"):
        product = await self._add(ProductModel(name=name, product_type="hosting", active=True))
        await self._add(
            ProductPricingModel(
                product_id=product.id,
                currency=currency,
                setup_fee=Decimal(setup_fee),
                monthly=Decimal(monthly),
                quarterly=Decimal(quarterly),
            )
        )
        return product

    async def tax_rule(self, *, country: str = "US", state: str = "", rate="10", inclusive: bool = False):
        return await self._add(
            TaxRuleModel(name=f"{country} tax", country=country, state=state, rate=Decimal(rate), is_inclusive=inclusive)
        )

    async def coupon(self, *, code: str = "SAVE5", coupon_type: str = "fixed", amount="5", max_uses=None):
        return await self._add(
            CouponModel(code=code, coupon_type=coupon_type, amount=Decimal(amount), status="active", max_uses=max_uses)
        )

    async def config_option(self, product_id: int, *, name: str = "Memory", sub_options=()):
        """sub_options: [(name, setup_fee, monthly), ...]；返回 (option, [sub_option, ...])"""
        option = await self._add(ConfigOptionModel(product_id=product_id, name=name))
        subs = []
        for position, (sub_name, setup_fee, monthly) in enumerate(sub_options):
            subs.append(
                await self._add(
                    ConfigSubOptionModel(
                        option_id=option.id,
                        name=sub_name,
                        setup_fee=Decimal(setup_fee),
                        monthly=Decimal(monthly),
                        sort_order=position,
                    )
                )
            )
        return option, subs

    async def update(self, model_cls, pk: int, **values) -> None:
        async with self._session_factory() as session:
            await session.execute(sa_update(model_cls).where(model_cls.id == pk).values(**values))
            await session.commit()

    async def gateway(self, *, slug: str = "stub", supports_refund: bool = True, supports_recurring: bool = True,
                      supports_tokenize: bool = True, active: bool = True, fee_percent="0", fee_fixed="0"):
        return await self._add(
            PaymentGatewayModel(
                name=slug.title(),
                slug=slug,
                active=active,
                supports_refund=supports_refund,
                supports_recurring=supports_recurring,
                supports_tokenize=supports_tokenize,
                fee_percent=Decimal(fee_percent),
                fee_fixed=Decimal(fee_fixed),
            )
        )


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow_factory(session_factory):
    return sqlalchemy_uow_factory(session_factory)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def stub_processor():
    return StubProcessor()


@pytest.fixture
def registry(stub_processor):
    return PaymentProcessorRegistry([stub_processor])


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def email_queue():
    return RecordingEmailQueue()
