from sqlalchemy import Column, Integer, String, Boolean, Text, Numeric, DateTime, Enum as SAEnum, ForeignKey, func
from realty_billing.core.database import Base

STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_EXTEND_PENDING = "extend_pending"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"

# アクセス権を与えうるステータス (end_date の確認も別途必要)
ACCESS_STATUSES = (STATUS_ACTIVE, STATUS_EXTEND_PENDING)
STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_EXTEND_PENDING, STATUS_EXPIRED, STATUS_CANCELLED)


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tariff_id = Column(Integer, ForeignKey("tariffs.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False)
    price_paid = Column(Numeric(10, 2), nullable=False, comment="最後に請求した価格 (カタログ変更で再計算しない)")
    start_date = Column(DateTime, nullable=True, comment="有効化前はNULL")
    end_date = Column(DateTime, nullable=True, index=True, comment="有効化前はNULL、以降は保持")
    status = Column(
        SAEnum(*STATUSES, name="subscription_status"),
        nullable=False,
        default=STATUS_PENDING,
        index=True,
    )
    is_enabled = Column(Boolean, nullable=False, default=True, comment="ユーザーによる一時停止スイッチ")
    payment_method = Column(String(50), nullable=True)
    admin_notes = Column(Text, nullable=True, comment="管理者メモ ('; ' 区切りで追記)")
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    requested_tariff_id = Column(
        Integer, ForeignKey("tariffs.id", ondelete="SET NULL"), nullable=True,
        comment="延長申請時にユーザーが指定した料金プラン (参考情報)",
    )
    version = Column(Integer, nullable=False, comment="楽観ロック用")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
