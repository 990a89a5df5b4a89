"""購読履歴 (監査ログ)

追記と検索のみ。更新・削除のAPIは持たない。
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence
from sqlalchemy.orm import Session

from realty_billing.models.category import Category
from realty_billing.models.location import Location
from realty_billing.models.subscription import UserSubscription
from realty_billing.models.subscription_history import SubscriptionHistory, ACTIONS
from realty_billing.models.tariff import Tariff

SORTABLE_FIELDS = {c.name for c in SubscriptionHistory.__table__.columns}


class AuditLog:
    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        sub: UserSubscription,
        action: str,
        action_date: datetime,
        notes: Optional[str] = None,
        price_paid: Optional[Decimal] = None,
    ) -> SubscriptionHistory:
        """履歴を1件追加 (commitは呼び出し側のトランザクションで行う)"""
        if action not in ACTIONS:
            raise ValueError(f"unknown history action: {action}")

        tariff = self.db.get(Tariff, sub.tariff_id)
        category = self.db.get(Category, sub.category_id)
        location = self.db.get(Location, sub.location_id)

        entry = SubscriptionHistory(
            user_id=sub.user_id,
            subscription_id=sub.id,
            action=action,
            tariff_name=tariff.name if tariff else "",
            category_name=category.name if category else "",
            location_name=location.full_name if location else "",
            price_paid=price_paid if price_paid is not None else sub.price_paid,
            action_date=action_date,
            notes=notes,
        )
        self.db.add(entry)
        return entry

    def list_history(
        self,
        subscription_id: Optional[int] = None,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        actions: Optional[Sequence[str]] = None,
        page: int = 1,
        per_page: int = 50,
        sort_by: str = "action_date",
        sort_dir: str = "asc",
    ) -> tuple[int, list[SubscriptionHistory]]:
        """履歴検索 (件数, ページ内の行) を返す"""
        if sort_by not in SORTABLE_FIELDS:
            raise ValueError(f"cannot sort by '{sort_by}'")

        q = self.db.query(SubscriptionHistory)
        if subscription_id is not None:
            q = q.filter(SubscriptionHistory.subscription_id == subscription_id)
        if user_id is not None:
            q = q.filter(SubscriptionHistory.user_id == user_id)
        if date_from:
            q = q.filter(SubscriptionHistory.action_date >= date_from)
        if date_to:
            q = q.filter(SubscriptionHistory.action_date <= date_to)
        if actions:
            q = q.filter(SubscriptionHistory.action.in_(list(actions)))

        total = q.count()

        column = getattr(SubscriptionHistory, sort_by)
        id_column = SubscriptionHistory.id
        if sort_dir == "desc":
            q = q.order_by(column.desc(), id_column.desc())
        else:
            q = q.order_by(column.asc(), id_column.asc())

        rows = q.offset((page - 1) * per_page).limit(per_page).all()
        return total, rows
