"""定期実行: 期限切れ購読の expire"""
from realty_billing.core.clock import utcnow
from realty_billing.core.config import settings
from realty_billing.core.database import SessionLocal
from realty_billing.core.redis import HEARTBEAT_KEY, get_sync_redis
from realty_billing.core.logging import get_logger
from realty_billing.services.expiration_sweeper import sweep_expired

logger = get_logger(__name__)


def heartbeat_ttl() -> int:
    """スイープ2回分。1回取りこぼしてもキーは残る"""
    return settings.SWEEP_INTERVAL_MINUTES * 60 * 2


def expire_subscriptions():
    """end_date を過ぎた active 購読を expired にする"""
    now = utcnow()

    # ハートビート書き込み
    try:
        redis = get_sync_redis()
        redis.set(HEARTBEAT_KEY, now.isoformat(), ex=heartbeat_ttl())
    except Exception as e:
        logger.warning(f"ハートビート書き込み失敗: {e}")

    db = SessionLocal()
    try:
        result = sweep_expired(db, now)
        if result.failed:
            logger.warning(
                f"期限切れ処理に失敗した購読あり: {len(result.failed)}件",
                extra={"extra_data": {"failed_ids": result.failed}},
            )
    except Exception as e:
        logger.error(f"期限切れ処理エラー: {e}", exc_info=True)
    finally:
        db.close()
