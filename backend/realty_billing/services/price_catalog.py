"""料金カタログ参照 (読み取り専用)"""
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from realty_billing.core.exceptions import NotFound
from realty_billing.models.tariff import Tariff
from realty_billing.models.tariff_price import TariffPrice
from realty_billing.models.location import Location


class PriceCatalog:
    """料金プランの期間と価格 (ロケーション別上書き込み) を引く。

    状態機械にはコンストラクタで渡す。テストでは差し替え可能。
    """

    def __init__(self, db: Session):
        self.db = db

    def get_tariff(self, tariff_id: int) -> Tariff:
        tariff = self.db.query(Tariff).filter(Tariff.id == tariff_id).first()
        if not tariff:
            raise NotFound("tariff", tariff_id)
        return tariff

    def get_tariff_by_code(self, code: str) -> Optional[Tariff]:
        return self.db.query(Tariff).filter(Tariff.code == code).first()

    def list_active_tariffs(self) -> list[Tariff]:
        return self.db.query(Tariff).filter(Tariff.is_active == True).order_by(Tariff.id).all()

    def resolve_price(self, tariff_id: int, location_id: int) -> Decimal:
        """ロケーション別価格があればそれを、なければ標準価格を返す"""
        tariff = self.get_tariff(tariff_id)
        override = self.db.query(TariffPrice).filter(
            TariffPrice.tariff_id == tariff_id,
            TariffPrice.location_id == location_id,
        ).first()
        if override:
            return Decimal(override.price)
        return Decimal(tariff.base_price)

    def duration_hours(self, tariff_id: int, override: Optional[int] = None) -> int:
        """付与時間 (時間)。明示指定があれば優先"""
        if override is not None:
            return int(override)
        return int(self.get_tariff(tariff_id).duration_hours)

    def price_matrix(self) -> list[dict]:
        """全アクティブ料金プラン × 全ロケーションの価格表 (料金ページ用)"""
        tariffs = self.list_active_tariffs()
        locations = self.db.query(Location).order_by(Location.city, Location.region).all()

        overrides = {
            (p.tariff_id, p.location_id): Decimal(p.price)
            for p in self.db.query(TariffPrice).filter(
                TariffPrice.tariff_id.in_([t.id for t in tariffs])
            ).all()
        } if tariffs else {}

        matrix = []
        for location in locations:
            for tariff in tariffs:
                matrix.append({
                    "tariff_id": tariff.id,
                    "location_id": location.id,
                    "price": overrides.get((tariff.id, location.id), Decimal(tariff.base_price)),
                })
        return matrix
