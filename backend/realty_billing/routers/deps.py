"""共通依存関数: 認証・ロール制御・購読チェック"""
from typing import Optional
from fastapi import Request, HTTPException, Depends
from sqlalchemy.orm import Session

from realty_billing.core.clock import utcnow
from realty_billing.core.database import get_db
from realty_billing.core.redis import get_redis
from realty_billing.core.session import get_session
from realty_billing.models.user import User
from realty_billing.services.access_gate import AccessGate


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    r=Depends(get_redis),
) -> Optional[User]:
    """Cookie → Redis → DB でユーザー取得。未ログインならNone"""
    session_id = request.cookies.get("session_id")
    if not session_id:
        return None

    session_data = await get_session(r, session_id)
    if not session_data:
        return None

    user_id = int(session_data.get("user_id", 0))
    if not user_id:
        return None

    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
    return user


async def require_login(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """ログイン必須。未ログインなら401"""
    if user is None:
        raise HTTPException(status_code=401, detail="ログインが必要です")
    return user


async def require_admin(
    user: User = Depends(require_login),
) -> User:
    """管理者権限必須。adminでなければ403"""
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="管理者権限が必要です")
    return user


async def require_subscription(
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
) -> User:
    """有料機能: 管理者または有効な購読が必要。なければ403"""
    if not AccessGate(db).has_access(user.id, utcnow()):
        raise HTTPException(
            status_code=403,
            detail="この機能を利用するには有効な購読が必要です",
            headers={"X-Error-Code": "subscription_required"},
        )
    return user
