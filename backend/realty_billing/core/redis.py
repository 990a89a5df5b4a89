"""Redis 接続

API: 認証サービスのセッション (session:<id>) を読み、/health でスイープのハートビートを返す。
Scheduler: スイープごとにハートビートを書く。購読データ自体は Redis に置かない。
"""
from typing import Optional
import redis.asyncio as aioredis
import redis as sync_redis
from realty_billing.core.config import settings

HEARTBEAT_KEY = "scheduler:heartbeat"

# API プロセス: リクエストごとのセッション参照
session_pool = aioredis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=20,
    decode_responses=True,
)


async def get_redis() -> aioredis.Redis:
    """FastAPI依存関数: セッション参照用クライアント"""
    return aioredis.Redis(connection_pool=session_pool)


# Scheduler プロセス: ジョブは max_instances=1 なので同時に1本
heartbeat_pool = sync_redis.ConnectionPool.from_url(
    settings.REDIS_URL,
    max_connections=2,
    decode_responses=True,
)


def get_sync_redis() -> sync_redis.Redis:
    """ハートビート書き込み用クライアント"""
    return sync_redis.Redis(connection_pool=heartbeat_pool)


async def read_heartbeat(r: aioredis.Redis) -> Optional[str]:
    """最後にスイープが走った時刻 (ISO形式, UTC)。TTL切れなら None"""
    return await r.get(HEARTBEAT_KEY)


async def check_redis_connection() -> bool:
    """Redis接続チェック"""
    try:
        r = await get_redis()
        await r.ping()
        return True
    except Exception:
        return False
