"""購読ルーター (ユーザー): 申込・延長申請・一時停止・アクセス確認"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from realty_billing.core.clock import utcnow
from realty_billing.core.database import get_db
from realty_billing.models.user import User
from realty_billing.schemas.subscription import (
    SubscriptionRequest, ExtendRequest, ToggleRequest, SubscriptionInfo,
)
from realty_billing.services import subscription_service
from realty_billing.services.access_gate import AccessGate
from realty_billing.routers.deps import require_login

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("/request")
async def request_subscription(
    req: SubscriptionRequest,
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """購読申込 (デモ料金プランは即時有効化)"""
    sub = subscription_service.request_subscription(
        db, user.id, req.tariff_id, req.category_id, req.location_id, utcnow(), notes=req.notes,
    )
    return {
        "message": "購読申込を受け付けました",
        "subscription_id": sub.id,
        "status": sub.status,
    }


@router.get("/me", response_model=list[SubscriptionInfo])
async def my_subscriptions(
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """自分の購読一覧"""
    return subscription_service.get_user_subscriptions(db, user.id)


@router.get("/access")
async def check_access(
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """有料機能へのアクセス可否"""
    return {"has_access": AccessGate(db).has_access(user.id, utcnow())}


@router.post("/{subscription_id}/extend-request", response_model=SubscriptionInfo)
async def request_extension(
    subscription_id: int,
    req: ExtendRequest,
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """延長申請 (管理者の承認待ちになる)"""
    machine = subscription_service.get_machine(db)
    return machine.request_extension(subscription_id, user.id, req.tariff_id, utcnow(), notes=req.notes)


@router.post("/{subscription_id}/toggle")
async def toggle_subscription(
    subscription_id: int,
    req: ToggleRequest,
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """一時停止 / 再開。値が同じなら changed=false"""
    machine = subscription_service.get_machine(db)
    changed = machine.toggle_enabled(subscription_id, req.enabled, utcnow(), user_id=user.id)
    return {"subscription_id": subscription_id, "is_enabled": req.enabled, "changed": changed}
