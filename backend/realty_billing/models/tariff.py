from sqlalchemy import Column, Integer, String, Boolean, Text, Numeric, DateTime, func
from realty_billing.core.database import Base


class Tariff(Base):
    __tablename__ = "tariffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, comment="料金プラン名")
    code = Column(String(50), nullable=False, unique=True, comment="demo / premium / premium_7 ...")
    description = Column(Text, nullable=True)
    duration_hours = Column(Integer, nullable=False, comment="標準付与時間 (時間)")
    base_price = Column(Numeric(10, 2), nullable=False, default=0, comment="標準価格 (ロケーション別価格がない場合)")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def is_demo(self, demo_code: str = "demo") -> bool:
        return self.code == demo_code

    def is_premium(self) -> bool:
        return self.code.startswith("premium")
