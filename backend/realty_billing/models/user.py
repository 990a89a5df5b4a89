from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, func
from realty_billing.core.database import Base


class User(Base):
    """CRMユーザー (作成・認証は認証サービス側。ここでは参照とトライアル管理のみ)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    role = Column(SAEnum("user", "admin", name="user_role"), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    is_trial_used = Column(Boolean, nullable=False, default=False, comment="デモ料金プラン使用済み")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
