"""管理画面: 購読管理 (一覧・作成・有効化・延長・キャンセル・料金プラン変更・履歴)"""
from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from realty_billing.core.clock import utcnow
from realty_billing.core.database import get_db
from realty_billing.models.subscription import STATUSES
from realty_billing.models.subscription_history import ACTIONS
from realty_billing.models.user import User
from realty_billing.routers.deps import require_admin
from realty_billing.schemas.subscription import (
    AdminCreateSubscription, AdminActivate, AdminExtend, AdminCancel, AdminUpdateTariff,
    SubscriptionInfo, HistoryEntryInfo,
)
from realty_billing.services import subscription_service
from realty_billing.services.access_gate import AccessGate
from realty_billing.services.audit_log import AuditLog, SORTABLE_FIELDS

router = APIRouter(prefix="/api/admin/subscriptions", tags=["admin-subscriptions"])


@router.post("", response_model=SubscriptionInfo)
async def create_subscription(
    data: AdminCreateSubscription,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """手動作成 (auto_activate なら即時有効化)"""
    if not db.get(User, data.user_id):
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")

    machine = subscription_service.get_machine(db)
    return machine.create(
        data.user_id, data.tariff_id, data.category_id, data.location_id, utcnow(),
        admin_id=admin.id,
        auto_activate=data.auto_activate,
        payment_method=data.payment_method,
        notes=data.notes,
        duration_hours=data.duration_hours,
        price=data.price,
    )


@router.post("/{subscription_id}/activate", response_model=SubscriptionInfo)
async def activate_subscription(
    subscription_id: int,
    data: AdminActivate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """有効化 (pending / expired のみ)"""
    return subscription_service.activate_subscription(
        db, subscription_id, admin.id, data.payment_method, utcnow(),
        notes=data.notes, duration_hours=data.duration_hours,
    )


@router.post("/{subscription_id}/extend", response_model=SubscriptionInfo)
async def extend_subscription(
    subscription_id: int,
    data: AdminExtend,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """延長 (延長申請の承認を兼ねる)"""
    machine = subscription_service.get_machine(db)
    return machine.extend_by_admin(
        subscription_id, admin.id, data.payment_method, utcnow(),
        new_price=data.price, notes=data.notes, duration_hours=data.duration_hours,
    )


@router.post("/{subscription_id}/cancel", response_model=SubscriptionInfo)
async def cancel_subscription(
    subscription_id: int,
    data: AdminCancel,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """キャンセル"""
    machine = subscription_service.get_machine(db)
    return machine.cancel(subscription_id, utcnow(), reason=data.reason or "Cancelled by administrator")


@router.put("/{subscription_id}/tariff", response_model=SubscriptionInfo)
async def update_tariff(
    subscription_id: int,
    data: AdminUpdateTariff,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """料金プラン変更 (残り時間は引き継ぐ)"""
    machine = subscription_service.get_machine(db)
    return machine.update_tariff(
        subscription_id, data.tariff_id, admin.id, utcnow(),
        new_price=data.price, payment_method=data.payment_method, notes=data.notes,
    )


@router.get("")
async def list_subscriptions(
    status: Optional[list[str]] = Query(None),
    user_id: Optional[int] = None,
    tariff_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    created_from: Optional[date] = None,
    created_to: Optional[date] = None,
    days_left_min: Optional[int] = None,
    days_left_max: Optional[int] = None,
    sort_by: str = "created_at",
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """購読一覧 (ステータス・ユーザー・料金プラン・作成日・残り日数で絞り込み)"""
    if sort_by not in subscription_service.SUBSCRIPTION_SORT_FIELDS:
        raise HTTPException(status_code=400, detail=f"並び替えできない項目です: {sort_by}")
    if status and any(s not in STATUSES for s in status):
        raise HTTPException(status_code=400, detail="不明なステータスが含まれています")

    total, rows = subscription_service.list_subscriptions(
        db, utcnow(),
        statuses=status,
        user_id=user_id,
        tariff_id=tariff_id,
        subscription_id=subscription_id,
        created_from=datetime.combine(created_from, datetime.min.time()) if created_from else None,
        created_to=datetime.combine(created_to, datetime.max.time()) if created_to else None,
        days_left_min=days_left_min,
        days_left_max=days_left_max,
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "subscriptions": [SubscriptionInfo.model_validate(r) for r in rows],
    }


@router.get("/history")
async def list_history(
    subscription_id: Optional[int] = None,
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    actions: Optional[list[str]] = Query(None),
    sort_by: str = "action_date",
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """購読履歴一覧"""
    if sort_by not in SORTABLE_FIELDS:
        raise HTTPException(status_code=400, detail=f"並び替えできない項目です: {sort_by}")
    if actions and any(a not in ACTIONS for a in actions):
        raise HTTPException(status_code=400, detail="不明な操作種別が含まれています")

    total, rows = AuditLog(db).list_history(
        subscription_id=subscription_id,
        user_id=user_id,
        date_from=datetime.combine(start_date, datetime.min.time()) if start_date else None,
        date_to=datetime.combine(end_date, datetime.max.time()) if end_date else None,
        actions=actions,
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "history": [HistoryEntryInfo.model_validate(r) for r in rows],
    }


@router.get("/scopes")
async def list_active_scopes(db: Session = Depends(get_db), _=Depends(require_admin)):
    """有効な購読がある (ロケーション, カテゴリ) の組"""
    return [
        {"location_id": location_id, "category_id": category_id}
        for location_id, category_id in AccessGate(db).active_scopes(utcnow())
    ]
