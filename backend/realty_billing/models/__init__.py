# 全モデルをインポート (Alembic autogenerate用)
from realty_billing.models.user import User
from realty_billing.models.category import Category
from realty_billing.models.location import Location
from realty_billing.models.tariff import Tariff
from realty_billing.models.tariff_price import TariffPrice
from realty_billing.models.subscription import UserSubscription
from realty_billing.models.subscription_history import SubscriptionHistory

__all__ = [
    "User",
    "Category",
    "Location",
    "Tariff",
    "TariffPrice",
    "UserSubscription",
    "SubscriptionHistory",
]
