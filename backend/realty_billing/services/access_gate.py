"""有料機能へのアクセス判定 (参照のみ)

スイーパーの遅れを考慮し、status だけでなく end_date も必ず確認する。
"""
from datetime import datetime
from sqlalchemy.orm import Session

from realty_billing.models.subscription import UserSubscription, ACCESS_STATUSES
from realty_billing.models.user import User


class AccessGate:
    def __init__(self, db: Session):
        self.db = db

    def _live(self, now: datetime):
        return self.db.query(UserSubscription).filter(
            UserSubscription.status.in_(ACCESS_STATUSES),
            UserSubscription.end_date >= now,
        )

    def has_access(self, user_id: int, now: datetime) -> bool:
        """管理者、または有効な購読を1件以上持つユーザーなら True"""
        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            return False
        if user.role == "admin":
            return True
        return self._live(now).filter(UserSubscription.user_id == user_id).count() > 0

    def has_scope_access(self, user_id: int, category_id: int, location_id: int, now: datetime) -> bool:
        """特定の (カテゴリ, ロケーション) へのアクセス。一時停止中の購読は除く"""
        user = self.db.get(User, user_id)
        if not user or not user.is_active:
            return False
        if user.role == "admin":
            return True
        return self._live(now).filter(
            UserSubscription.user_id == user_id,
            UserSubscription.category_id == category_id,
            UserSubscription.location_id == location_id,
            UserSubscription.is_enabled == True,
        ).count() > 0

    def active_scopes(self, now: datetime) -> list[tuple[int, int]]:
        """有効な購読がある (location_id, category_id) の組 (物件取り込み対象)"""
        rows = (
            self._live(now)
            .filter(UserSubscription.is_enabled == True)
            .with_entities(UserSubscription.location_id, UserSubscription.category_id)
            .distinct()
            .order_by(UserSubscription.location_id, UserSubscription.category_id)
            .all()
        )
        return [(r[0], r[1]) for r in rows]
