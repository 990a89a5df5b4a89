from sqlalchemy import Column, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint, func
from realty_billing.core.database import Base


class TariffPrice(Base):
    """ロケーション別の価格上書き"""

    __tablename__ = "tariff_prices"
    __table_args__ = (
        UniqueConstraint("tariff_id", "location_id", name="uq_tariff_prices_tariff_location"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tariff_id = Column(Integer, ForeignKey("tariffs.id", ondelete="CASCADE"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
