from sqlalchemy import Column, Integer, String
from realty_billing.core.database import Base


class Category(Base):
    """物件カテゴリ (賃貸・住宅、売買・住宅 など)"""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
