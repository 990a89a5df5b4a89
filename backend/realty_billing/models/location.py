from sqlalchemy import Column, Integer, String
from realty_billing.core.database import Base


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    city = Column(String(255), nullable=False)
    region = Column(String(255), nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.city}, {self.region}"
