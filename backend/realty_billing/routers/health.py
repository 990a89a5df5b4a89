from fastapi import APIRouter, Depends
from realty_billing.core.database import check_db_connection
from realty_billing.core.redis import check_redis_connection, get_redis, read_heartbeat

router = APIRouter()


@router.get("/health")
@router.get("/api/health")
async def health_check(r=Depends(get_redis)):
    """ヘルスチェック (DB / Redis / 期限切れ処理のハートビート)"""
    db_ok = check_db_connection()
    redis_ok = await check_redis_connection()

    last_sweep = None
    if redis_ok:
        last_sweep = await read_heartbeat(r)

    status = "ok" if (db_ok and redis_ok) else "degraded"

    return {
        "status": status,
        "db": "connected" if db_ok else "disconnected",
        "redis": "connected" if redis_ok else "disconnected",
        "last_sweep_at": last_sweep,
    }
