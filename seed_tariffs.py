#!/usr/bin/env python3
"""料金プラン・カテゴリ・ロケーションの初期データ投入スクリプト"""
import sys
sys.path.insert(0, '/app')

from decimal import Decimal

from realty_billing.core.database import SessionLocal
from realty_billing.models.tariff import Tariff
from realty_billing.models.tariff_price import TariffPrice
from realty_billing.models.category import Category
from realty_billing.models.location import Location

TARIFFS = [
    {"code": "demo", "name": "Демо", "duration_hours": 72, "base_price": Decimal("0"),
     "description": "Бесплатный пробный доступ на 3 дня"},
    {"code": "premium", "name": "Премиум", "duration_hours": 720, "base_price": Decimal("5000")},
    {"code": "premium_7", "name": "Премиум 7 дней", "duration_hours": 168, "base_price": Decimal("1500")},
    {"code": "premium_14", "name": "Премиум 14 дней", "duration_hours": 336, "base_price": Decimal("2700")},
]

CATEGORIES = ["Аренда жилая", "Продажа жилая", "Аренда коммерческая", "Продажа коммерческая"]

LOCATIONS = [
    ("Москва", "Московская область"),
    ("Санкт-Петербург", "Ленинградская область"),
    ("Казань", "Республика Татарстан"),
]

# ロケーション別の価格上書き: (料金プランcode, 都市) → 価格
PRICE_OVERRIDES = {
    ("premium", "Москва"): Decimal("6500"),
    ("premium", "Санкт-Петербург"): Decimal("6000"),
    ("premium_7", "Москва"): Decimal("1900"),
}


def main():
    db = SessionLocal()
    try:
        tariffs = {}
        for data in TARIFFS:
            tariff = db.query(Tariff).filter(Tariff.code == data["code"]).first()
            if tariff:
                print(f"スキップ (既存): {data['code']}")
            else:
                tariff = Tariff(is_active=True, **data)
                db.add(tariff)
                db.flush()
                print(f"料金プラン追加: {data['code']} ({data['duration_hours']}h, {data['base_price']})")
            tariffs[tariff.code] = tariff

        for name in CATEGORIES:
            if not db.query(Category).filter(Category.name == name).first():
                db.add(Category(name=name))
                print(f"カテゴリ追加: {name}")

        locations = {}
        for city, region in LOCATIONS:
            loc = db.query(Location).filter(Location.city == city, Location.region == region).first()
            if not loc:
                loc = Location(city=city, region=region)
                db.add(loc)
                db.flush()
                print(f"ロケーション追加: {loc.full_name}")
            locations[city] = loc

        for (code, city), price in PRICE_OVERRIDES.items():
            tariff, loc = tariffs[code], locations[city]
            exists = db.query(TariffPrice).filter(
                TariffPrice.tariff_id == tariff.id,
                TariffPrice.location_id == loc.id,
            ).first()
            if not exists:
                db.add(TariffPrice(tariff_id=tariff.id, location_id=loc.id, price=price))
                print(f"価格上書き追加: {code} @ {city} = {price}")

        db.commit()
        print("初期データ投入完了")
    finally:
        db.close()


if __name__ == "__main__":
    main()
