"""公開料金プランAPI"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from realty_billing.core.database import get_db
from realty_billing.models.category import Category
from realty_billing.models.location import Location
from realty_billing.services.price_catalog import PriceCatalog

router = APIRouter(prefix="/api/tariffs", tags=["tariffs"])


@router.get("")
async def get_tariff_info(db: Session = Depends(get_db)):
    """料金ページ用: カテゴリ・ロケーション・料金プラン・ロケーション別価格"""
    catalog = PriceCatalog(db)
    categories = db.query(Category).order_by(Category.id).all()
    locations = db.query(Location).order_by(Location.city, Location.region).all()

    return {
        "categories": [{"id": c.id, "name": c.name} for c in categories],
        "locations": [{"id": l.id, "name": l.full_name} for l in locations],
        "tariffs": [
            {
                "id": t.id,
                "name": t.name,
                "code": t.code,
                "description": t.description,
                "duration_hours": t.duration_hours,
            }
            for t in catalog.list_active_tariffs()
        ],
        "tariff_prices": [
            {**row, "price": str(row["price"])} for row in catalog.price_matrix()
        ],
    }
