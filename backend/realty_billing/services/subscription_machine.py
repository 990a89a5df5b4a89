"""購読ライフサイクルの状態機械

pending → active ⇄ extend_pending, active → expired, expired → active,
{pending, active, extend_pending} → cancelled。cancelled は終端。

各遷移は 1 トランザクション: 行ロック → ステータス検証 → 更新 → 履歴1件追記 → commit。
失敗時はロールバックし、購読・履歴とも変更しない。現在時刻は必ず呼び出し側が渡す。
"""
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from realty_billing.core.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFound,
    SubscriptionError,
)
from realty_billing.core.logging import get_logger
from realty_billing.models.category import Category
from realty_billing.models.location import Location
from realty_billing.models.subscription import (
    UserSubscription,
    STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_EXTEND_PENDING,
    STATUS_EXPIRED,
    STATUS_CANCELLED,
)
from realty_billing.services.audit_log import AuditLog
from realty_billing.services.price_catalog import PriceCatalog

logger = get_logger(__name__)

HOUR = timedelta(hours=1)


def append_note(existing: Optional[str], note: Optional[str]) -> Optional[str]:
    """管理者メモは上書きせず '; ' で連結する"""
    if not note:
        return existing
    return f"{existing}; {note}" if existing else note


def remaining_hours(end_date: datetime, now: datetime) -> int:
    """残り時間 (時間単位, 端数切り上げ)。期限切れなら0"""
    left = end_date - now
    if left <= timedelta(0):
        return 0
    hours = left // HOUR
    if left % HOUR:
        hours += 1
    return hours


def _with_note(text: str, notes: Optional[str]) -> str:
    return f"{text} Note: {notes}" if notes else text


class SubscriptionStateMachine:
    def __init__(self, db: Session, catalog: PriceCatalog, audit: Optional[AuditLog] = None):
        self.db = db
        self.catalog = catalog
        self.audit = audit or AuditLog(db)
        self._depth = 0

    # ------------------------------------------------------------------
    # トランザクション
    # ------------------------------------------------------------------

    def _lock(self, subscription_id: int) -> UserSubscription:
        self.db.flush()
        sub = (
            self.db.query(UserSubscription)
            .filter(UserSubscription.id == subscription_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not sub:
            raise NotFound("subscription", subscription_id)
        return sub

    @contextmanager
    def atomic(self, subscription_id: Optional[int] = None):
        """1つの作業単位。入れ子の内側はコミットせず、最外側でまとめてコミット / ロールバック"""
        self._depth += 1
        try:
            yield
            if self._depth == 1:
                self.db.commit()
        except StaleDataError:
            if self._depth == 1:
                self.db.rollback()
                logger.warning(f"購読の同時更新を検出: subscription_id={subscription_id}")
                raise ConcurrencyConflict(subscription_id)
            raise
        except Exception:
            if self._depth == 1:
                self.db.rollback()
            raise
        finally:
            self._depth -= 1

    @contextmanager
    def _transition(self, subscription_id: int):
        with self.atomic(subscription_id):
            yield self._lock(subscription_id)

    def _duration(self, tariff_id: int, duration_hours: Optional[int]) -> int:
        hours = self.catalog.duration_hours(tariff_id, duration_hours)
        if hours <= 0:
            raise SubscriptionError("duration_hours must be positive", code="validation_error")
        return hours

    # ------------------------------------------------------------------
    # 作成
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: int,
        tariff_id: int,
        category_id: int,
        location_id: int,
        now: datetime,
        admin_id: Optional[int] = None,
        auto_activate: bool = False,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
        price: Optional[Decimal] = None,
    ) -> UserSubscription:
        """pending で作成。auto_activate なら続けて activate する

        admin_id がなければユーザー申込として 'requested' を記録する。
        """
        if auto_activate and not payment_method:
            raise SubscriptionError("payment_method is required to activate", code="validation_error")

        self.check_scope(tariff_id, category_id, location_id)
        if auto_activate:
            self._duration(tariff_id, duration_hours)

        if price is None:
            price = self.catalog.resolve_price(tariff_id, location_id)

        with self.atomic():
            sub = UserSubscription(
                user_id=user_id,
                tariff_id=tariff_id,
                category_id=category_id,
                location_id=location_id,
                price_paid=price,
                status=STATUS_PENDING,
                is_enabled=True,
                admin_notes=None if auto_activate else notes,
            )
            self.db.add(sub)
            self.db.flush()

            if admin_id is None:
                self.audit.append(sub, "requested", now, notes=_with_note("Subscription requested by user.", notes))
            else:
                self.audit.append(sub, "created", now, notes=_with_note("Subscription created by administrator.", notes))

            if auto_activate:
                self._activate(sub, admin_id, payment_method, now, notes, duration_hours)

        logger.info(
            f"購読作成: subscription_id={sub.id}, user_id={user_id}, tariff_id={tariff_id}, "
            f"category_id={category_id}, location_id={location_id}, status={sub.status}"
        )
        return sub

    def check_scope(self, tariff_id: int, category_id: int, location_id: int) -> None:
        """有効なタリフ・存在するカテゴリ / 地域でなければ NotFound"""
        self.catalog.get_tariff(tariff_id)
        if not self.db.get(Category, category_id):
            raise NotFound("category", category_id)
        if not self.db.get(Location, location_id):
            raise NotFound("location", location_id)

    # ------------------------------------------------------------------
    # 管理者操作
    # ------------------------------------------------------------------

    def _activate(
        self,
        sub: UserSubscription,
        admin_id: Optional[int],
        payment_method: str,
        now: datetime,
        notes: Optional[str],
        duration_hours: Optional[int],
    ) -> int:
        if sub.status not in (STATUS_PENDING, STATUS_EXPIRED):
            raise InvalidTransition("activate", sub.status)

        hours = self._duration(sub.tariff_id, duration_hours)

        sub.status = STATUS_ACTIVE
        sub.is_enabled = True
        sub.start_date = now
        sub.end_date = now + timedelta(hours=hours)
        sub.payment_method = payment_method
        sub.admin_notes = append_note(sub.admin_notes, notes)
        sub.approved_by = admin_id
        sub.approved_at = now

        base = "Subscription activated by administrator." if admin_id else "Subscription activated automatically."
        self.audit.append(sub, "activated", now, notes=_with_note(base, notes))
        return hours

    def activate(
        self,
        subscription_id: int,
        admin_id: Optional[int],
        payment_method: str,
        now: datetime,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> UserSubscription:
        """pending / expired からのみ有効化"""
        with self._transition(subscription_id) as sub:
            hours = self._activate(sub, admin_id, payment_method, now, notes, duration_hours)

        logger.info(f"購読有効化: subscription_id={sub.id}, admin_id={admin_id}, hours={hours}")
        return sub

    def extend_by_admin(
        self,
        subscription_id: int,
        admin_id: int,
        payment_method: str,
        now: datetime,
        new_price: Optional[Decimal] = None,
        notes: Optional[str] = None,
        duration_hours: Optional[int] = None,
    ) -> UserSubscription:
        """延長。残り期間があれば既存 end_date に積み上げる"""
        with self._transition(subscription_id) as sub:
            if sub.status == STATUS_CANCELLED:
                raise InvalidTransition("extend", sub.status)

            hours = self._duration(sub.tariff_id, duration_hours)

            expired = sub.status == STATUS_EXPIRED or sub.end_date is None or sub.end_date <= now
            anchor = now if expired else sub.end_date

            sub.status = STATUS_ACTIVE
            if sub.start_date is None:
                sub.start_date = now
            sub.end_date = anchor + timedelta(hours=hours)
            if new_price is not None:
                sub.price_paid = new_price
            sub.payment_method = payment_method
            sub.admin_notes = append_note(sub.admin_notes, notes)
            sub.approved_by = admin_id
            sub.approved_at = now
            sub.requested_tariff_id = None

            self.audit.append(
                sub, "extended", now,
                notes=_with_note(f"Subscription extended by administrator for {hours}h.", notes),
            )

        logger.info(
            f"購読延長: subscription_id={sub.id}, admin_id={admin_id}, hours={hours}, "
            f"end_date={sub.end_date.isoformat()}"
        )
        return sub

    def cancel(
        self,
        subscription_id: int,
        now: datetime,
        reason: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> UserSubscription:
        """キャンセル。end_date は履歴のため保持"""
        with self._transition(subscription_id) as sub:
            if user_id is not None and sub.user_id != user_id:
                raise NotFound("subscription", subscription_id)
            if sub.status not in (STATUS_PENDING, STATUS_ACTIVE, STATUS_EXTEND_PENDING):
                raise InvalidTransition("cancel", sub.status)

            sub.status = STATUS_CANCELLED
            sub.requested_tariff_id = None
            self.audit.append(
                sub, "cancelled", now,
                notes=reason or "Subscription cancelled by user or administrator",
            )

        logger.info(f"購読キャンセル: subscription_id={sub.id}")
        return sub

    def update_tariff(
        self,
        subscription_id: int,
        new_tariff_id: int,
        admin_id: int,
        now: datetime,
        new_price: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> UserSubscription:
        """料金プラン変更。有効中なら未使用時間を新プランの期間に上乗せする"""
        with self._transition(subscription_id) as sub:
            if sub.status == STATUS_CANCELLED:
                raise InvalidTransition("update_tariff", sub.status)

            new_tariff = self.catalog.get_tariff(new_tariff_id)
            old_tariff_id = sub.tariff_id
            hours = self._duration(new_tariff_id, None)
            if new_price is None:
                new_price = self.catalog.resolve_price(new_tariff_id, sub.location_id)

            live = (
                sub.status in (STATUS_ACTIVE, STATUS_EXTEND_PENDING)
                and sub.end_date is not None
                and sub.end_date > now
            )
            carried = remaining_hours(sub.end_date, now) if live else 0

            if not live:
                sub.is_enabled = True
            sub.status = STATUS_ACTIVE
            sub.tariff_id = new_tariff_id
            sub.start_date = now
            sub.end_date = now + timedelta(hours=hours + carried)
            sub.price_paid = new_price
            if payment_method:
                sub.payment_method = payment_method
            sub.admin_notes = append_note(sub.admin_notes, notes)
            sub.approved_by = admin_id
            sub.approved_at = now
            sub.requested_tariff_id = None

            text = f"Tariff changed to '{new_tariff.name}' ({hours}h"
            text += f" + {carried}h carried over)." if carried else ")."
            self.audit.append(sub, "tariff_changed", now, notes=_with_note(text, notes))

        logger.info(
            f"料金プラン変更: subscription_id={sub.id}, tariff {old_tariff_id} → {new_tariff_id}, "
            f"carried_hours={carried}"
        )
        return sub

    # ------------------------------------------------------------------
    # ユーザー操作
    # ------------------------------------------------------------------

    def request_extension(
        self,
        subscription_id: int,
        user_id: int,
        tariff_id: int,
        now: datetime,
        notes: Optional[str] = None,
    ) -> UserSubscription:
        """延長申請。日付・価格は変えず、管理者の extend_by_admin を待つ

        指定された料金プランは参考情報として requested_tariff_id に残すだけ。
        """
        with self._transition(subscription_id) as sub:
            if sub.user_id != user_id:
                raise NotFound("subscription", subscription_id)
            if sub.status != STATUS_ACTIVE:
                raise InvalidTransition("request_extension", sub.status)

            tariff = self.catalog.get_tariff(tariff_id)
            if not tariff.is_active:
                raise NotFound("tariff", tariff_id)

            sub.status = STATUS_EXTEND_PENDING
            sub.requested_tariff_id = tariff_id
            self.audit.append(
                sub, "extend_requested", now,
                notes=_with_note(f"Extension requested by user (tariff '{tariff.name}').", notes),
            )

        logger.info(f"延長申請: subscription_id={sub.id}, requested_tariff_id={tariff_id}")
        return sub

    def toggle_enabled(
        self,
        subscription_id: int,
        enabled: bool,
        now: datetime,
        user_id: Optional[int] = None,
    ) -> bool:
        """一時停止スイッチ。値が変わらなければ履歴を残さず False を返す"""
        with self._transition(subscription_id) as sub:
            if user_id is not None and sub.user_id != user_id:
                raise NotFound("subscription", subscription_id)
            if sub.status != STATUS_ACTIVE:
                raise InvalidTransition("toggle_enabled", sub.status)
            if bool(sub.is_enabled) == bool(enabled):
                return False

            sub.is_enabled = bool(enabled)
            action = "enabled" if enabled else "disabled"
            self.audit.append(sub, action, now, notes=f"Subscription {action} by user")

        logger.info(f"購読{'再開' if enabled else '一時停止'}: subscription_id={subscription_id}")
        return True

    # ------------------------------------------------------------------
    # スケジューラ
    # ------------------------------------------------------------------

    def expire(self, subscription_id: int, now: datetime) -> bool:
        """期限切れ処理 (ExpirationSweeper専用)

        既に expired、またはスキャン後に延長されて end_date が未来なら何もせず False。
        """
        with self._transition(subscription_id) as sub:
            if sub.status == STATUS_EXPIRED:
                return False
            if sub.status != STATUS_ACTIVE:
                raise InvalidTransition("expire", sub.status)
            if sub.end_date is not None and sub.end_date > now:
                return False

            sub.status = STATUS_EXPIRED
            self.audit.append(sub, "expired", now, notes="Subscription expired automatically")

        logger.info(f"購読期限切れ: subscription_id={subscription_id}")
        return True
