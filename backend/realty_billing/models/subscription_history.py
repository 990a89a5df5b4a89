from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, func
from realty_billing.core.database import Base

ACTIONS = (
    "created",
    "requested",
    "activated",
    "extended",
    "extend_requested",
    "tariff_changed",
    "enabled",
    "disabled",
    "cancelled",
    "expired",
)


class SubscriptionHistory(Base):
    """購読操作の監査ログ。追記のみ、名称はスナップショットで保持"""

    __tablename__ = "subscription_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(
        Integer, ForeignKey("user_subscriptions.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    action = Column(String(32), nullable=False, index=True)
    tariff_name = Column(String(255), nullable=False, comment="操作時点の料金プラン名")
    category_name = Column(String(255), nullable=False, comment="操作時点のカテゴリ名")
    location_name = Column(String(255), nullable=False, comment="操作時点のロケーション名")
    price_paid = Column(Numeric(10, 2), nullable=False)
    action_date = Column(DateTime, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
