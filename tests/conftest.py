"""
pytest 共通フィクスチャ

サービスはインメモリ SQLite (ORMメタデータから生成) と固定時刻で検証する。
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import realty_billing.models  # noqa: F401
from realty_billing.core.database import Base
from realty_billing.models.category import Category
from realty_billing.models.location import Location
from realty_billing.models.subscription_history import SubscriptionHistory
from realty_billing.models.tariff import Tariff
from realty_billing.models.tariff_price import TariffPrice
from realty_billing.models.user import User
from realty_billing.services.price_catalog import PriceCatalog
from realty_billing.services.subscription_machine import SubscriptionStateMachine


@pytest.fixture
def engine():
    """テストごとに新しいインメモリDB"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    """固定の現在時刻 (naive UTC)"""
    return datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def seed(db):
    """ユーザー・カテゴリ・ロケーション・料金プランの初期データ"""
    user = User(name="Иван", role="user", is_active=True, is_trial_used=False)
    other = User(name="Мария", role="user", is_active=True, is_trial_used=False)
    admin = User(name="Администратор", role="admin", is_active=True, is_trial_used=True)
    rent = Category(name="Аренда жилая")
    sale = Category(name="Продажа жилая")
    moscow = Location(city="Москва", region="Московская область")
    kazan = Location(city="Казань", region="Республика Татарстан")
    demo = Tariff(name="Демо", code="demo", duration_hours=72, base_price=Decimal("0"), is_active=True)
    premium = Tariff(name="Премиум", code="premium", duration_hours=720, base_price=Decimal("5000"), is_active=True)
    short = Tariff(name="Премиум 2 дня", code="premium_2", duration_hours=48, base_price=Decimal("800"), is_active=True)
    basic = Tariff(name="Базовый", code="basic", duration_hours=240, base_price=Decimal("1500"), is_active=True)
    retired = Tariff(name="Архив", code="old", duration_hours=24, base_price=Decimal("100"), is_active=False)
    db.add_all([user, other, admin, rent, sale, moscow, kazan, demo, premium, short, basic, retired])
    db.flush()
    db.add(TariffPrice(tariff_id=premium.id, location_id=moscow.id, price=Decimal("6500")))
    db.commit()

    return {
        "user": user,
        "other": other,
        "admin": admin,
        "rent": rent,
        "sale": sale,
        "moscow": moscow,
        "kazan": kazan,
        "demo": demo,
        "premium": premium,
        "short": short,
        "basic": basic,
        "retired": retired,
    }


@pytest.fixture
def machine(db):
    return SubscriptionStateMachine(db, PriceCatalog(db))


@pytest.fixture
def history_of(db):
    """購読の履歴を古い順に取得するヘルパー"""
    def _history(subscription_id):
        return db.query(SubscriptionHistory).filter(
            SubscriptionHistory.subscription_id == subscription_id,
        ).order_by(SubscriptionHistory.id).all()
    return _history
