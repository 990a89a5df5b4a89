"""購読ビジネスロジック (申込フロー・デモ料金プランの扱い)"""
from datetime import datetime, timedelta
from typing import Optional, Sequence
from sqlalchemy.orm import Session

from realty_billing.core.config import settings
from realty_billing.core.exceptions import NotFound, RequestRejected
from realty_billing.core.logging import get_logger
from realty_billing.models.subscription import (
    UserSubscription,
    ACCESS_STATUSES,
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_PENDING,
    STATUSES,
)
from realty_billing.models.tariff import Tariff
from realty_billing.models.user import User
from realty_billing.services.price_catalog import PriceCatalog
from realty_billing.services.subscription_machine import SubscriptionStateMachine

logger = get_logger(__name__)

DEMO_UPGRADE_REASON = "Automatically cancelled on switch to a paid tariff"
DEMO_ADMIN_UPGRADE_REASON = "Automatically cancelled on premium activation by administrator"
SUBSCRIPTION_SORT_FIELDS = {c.name for c in UserSubscription.__table__.columns} | {"days_left"}


def get_machine(db: Session) -> SubscriptionStateMachine:
    return SubscriptionStateMachine(db, PriceCatalog(db))


def get_user_subscriptions(db: Session, user_id: int) -> list[UserSubscription]:
    """ユーザーの購読一覧 (新しい順)"""
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
    ).order_by(UserSubscription.created_at.desc(), UserSubscription.id.desc()).all()


def list_subscriptions(
    db: Session,
    now: datetime,
    statuses: Optional[Sequence[str]] = None,
    user_id: Optional[int] = None,
    tariff_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    days_left_min: Optional[int] = None,
    days_left_max: Optional[int] = None,
    page: int = 1,
    per_page: int = 20,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
) -> tuple[int, list[UserSubscription]]:
    """管理画面の購読一覧 (件数, ページ内の行)。days_left は end_date で判定・並び替え"""
    if sort_by not in SUBSCRIPTION_SORT_FIELDS:
        raise ValueError(f"cannot sort by '{sort_by}'")
    if statuses and any(s not in STATUSES for s in statuses):
        raise ValueError(f"unknown status in {list(statuses)}")

    q = db.query(UserSubscription)
    if subscription_id is not None:
        q = q.filter(UserSubscription.id == subscription_id)
    if user_id is not None:
        q = q.filter(UserSubscription.user_id == user_id)
    if tariff_id is not None:
        q = q.filter(UserSubscription.tariff_id == tariff_id)
    if statuses:
        q = q.filter(UserSubscription.status.in_(list(statuses)))
    if created_from:
        q = q.filter(UserSubscription.created_at >= created_from)
    if created_to:
        q = q.filter(UserSubscription.created_at <= created_to)
    if days_left_min is not None:
        q = q.filter(UserSubscription.end_date >= now + timedelta(days=days_left_min))
    if days_left_max is not None:
        q = q.filter(UserSubscription.end_date <= now + timedelta(days=days_left_max))

    total = q.count()

    column = UserSubscription.end_date if sort_by == "days_left" else getattr(UserSubscription, sort_by)
    if sort_dir == "asc":
        q = q.order_by(column.asc(), UserSubscription.id.asc())
    else:
        q = q.order_by(column.desc(), UserSubscription.id.desc())

    rows = q.offset((page - 1) * per_page).limit(per_page).all()
    return total, rows


def has_scope_subscription(db: Session, user_id: int, category_id: int, location_id: int, now: datetime) -> bool:
    """同じ (カテゴリ, ロケーション) に有効な購読があるか"""
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.category_id == category_id,
        UserSubscription.location_id == location_id,
        UserSubscription.status.in_(ACCESS_STATUSES),
        UserSubscription.end_date >= now,
    ).count() > 0


def has_pending_subscription(db: Session, user_id: int, category_id: int, location_id: int) -> bool:
    """同じ (カテゴリ, ロケーション) に承認待ちの申込があるか"""
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.category_id == category_id,
        UserSubscription.location_id == location_id,
        UserSubscription.status == STATUS_PENDING,
    ).count() > 0


def _active_demo_subscriptions(db: Session, user_id: int) -> list[UserSubscription]:
    return (
        db.query(UserSubscription)
        .join(Tariff, UserSubscription.tariff_id == Tariff.id)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == STATUS_ACTIVE,
            Tariff.code == settings.DEMO_TARIFF_CODE,
        )
        .all()
    )


def _cancel_demo_subscriptions(
    db: Session, machine: SubscriptionStateMachine, user_id: int, now: datetime, reason: str,
) -> int:
    demo_ids = [s.id for s in _active_demo_subscriptions(db, user_id)]
    for subscription_id in demo_ids:
        machine.cancel(subscription_id, now, reason=reason)
    if demo_ids:
        logger.info(f"デモ購読を自動キャンセル: user_id={user_id}, count={len(demo_ids)}")
    return len(demo_ids)


def _mark_trial_used(user: User):
    if not user.is_trial_used:
        user.is_trial_used = True


def request_subscription(
    db: Session,
    user_id: int,
    tariff_id: int,
    category_id: int,
    location_id: int,
    now: datetime,
    notes: Optional[str] = None,
) -> UserSubscription:
    """ユーザーからの購読申込

    デモ料金プランは即時有効化 (1ユーザー1回)。有料プランは pending で作成し、
    有効なデモ購読があれば先にキャンセルする。検証を通らなければ何も変更しない。
    """
    machine = get_machine(db)
    user = db.get(User, user_id)
    if not user:
        raise NotFound("user", user_id)
    tariff = machine.catalog.get_tariff(tariff_id)
    if not tariff.is_active:
        raise NotFound("tariff", tariff_id)
    machine.check_scope(tariff_id, category_id, location_id)

    is_demo = tariff.is_demo(settings.DEMO_TARIFF_CODE)
    if is_demo and user.is_trial_used:
        raise RequestRejected("Demo tariff has already been used", code="trial_used")

    if has_pending_subscription(db, user_id, category_id, location_id):
        raise RequestRejected(
            "A subscription request for this category and location is already pending",
            code="pending_subscription_exists",
        )

    with machine.atomic():
        demo_upgrade = False
        if not is_demo:
            demo_upgrade = _cancel_demo_subscriptions(db, machine, user_id, now, DEMO_UPGRADE_REASON) > 0

        if not demo_upgrade and has_scope_subscription(db, user_id, category_id, location_id, now):
            raise RequestRejected(
                "An active subscription for this category and location already exists",
                code="subscription_exists",
            )

        if is_demo:
            sub = machine.create(
                user_id, tariff_id, category_id, location_id, now,
                auto_activate=True,
                payment_method=settings.DEMO_PAYMENT_METHOD,
                notes=notes,
            )
            _mark_trial_used(user)
        else:
            sub = machine.create(user_id, tariff_id, category_id, location_id, now, notes=notes)
            if tariff.is_premium():
                _mark_trial_used(user)

    if is_demo:
        logger.info(f"デモ購読開始: subscription_id={sub.id}, user_id={user_id}")
    return sub


def activate_subscription(
    db: Session,
    subscription_id: int,
    admin_id: int,
    payment_method: str,
    now: datetime,
    notes: Optional[str] = None,
    duration_hours: Optional[int] = None,
) -> UserSubscription:
    """管理者による有効化。プレミアムなら同じユーザーのデモ購読を終了させる

    デモのキャンセル・トライアル消費・有効化は1トランザクションで、失敗時はすべて戻る。
    """
    machine = get_machine(db)
    sub = db.get(UserSubscription, subscription_id)
    if not sub:
        raise NotFound("subscription", subscription_id)

    tariff = machine.catalog.get_tariff(sub.tariff_id)
    with machine.atomic(subscription_id):
        if tariff.is_premium() and sub.status in (STATUS_PENDING, STATUS_EXPIRED):
            user = db.get(User, sub.user_id)
            if user:
                _mark_trial_used(user)
            _cancel_demo_subscriptions(db, machine, sub.user_id, now, DEMO_ADMIN_UPGRADE_REASON)

        sub = machine.activate(
            subscription_id, admin_id, payment_method, now, notes=notes, duration_hours=duration_hours,
        )
    return sub
