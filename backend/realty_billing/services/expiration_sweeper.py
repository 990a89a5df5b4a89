"""期限到来した購読の一括 expire"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy.orm import Session

from realty_billing.core.exceptions import InvalidTransition
from realty_billing.core.logging import get_logger
from realty_billing.models.subscription import UserSubscription, STATUS_ACTIVE
from realty_billing.services.price_catalog import PriceCatalog
from realty_billing.services.subscription_machine import SubscriptionStateMachine

logger = get_logger(__name__)


@dataclass
class SweepResult:
    found: int = 0
    expired: int = 0
    skipped: int = 0
    failed: list[int] = field(default_factory=list)


def find_expired_candidates(db: Session, now: datetime) -> list[UserSubscription]:
    """status=active かつ end_date <= now の購読"""
    return db.query(UserSubscription).filter(
        UserSubscription.status == STATUS_ACTIVE,
        UserSubscription.end_date <= now,
    ).order_by(UserSubscription.id).all()


def sweep_expired(
    db: Session,
    now: datetime,
    candidates: Optional[Iterable[UserSubscription]] = None,
    machine: Optional[SubscriptionStateMachine] = None,
) -> SweepResult:
    """候補を1件ずつ別トランザクションで expire する

    1件の失敗はログに残して続行する。スキャン後に管理者がキャンセル・延長した購読は
    expire 側の前提条件チェックでスキップされる。
    """
    machine = machine or SubscriptionStateMachine(db, PriceCatalog(db))
    if candidates is None:
        candidates = find_expired_candidates(db, now)
    ids = [c.id for c in candidates]

    result = SweepResult(found=len(ids))
    for subscription_id in ids:
        try:
            if machine.expire(subscription_id, now):
                result.expired += 1
            else:
                result.skipped += 1
        except InvalidTransition as e:
            # スキャン後にキャンセルされた
            result.skipped += 1
            logger.info(f"期限切れ処理スキップ: subscription_id={subscription_id}, status={e.status}")
        except Exception as e:
            # 1件の失敗で他の購読の処理は止めない
            result.failed.append(subscription_id)
            logger.error(
                f"購読期限切れ処理エラー: subscription_id={subscription_id}, error={e}",
                exc_info=True,
            )

    if result.found:
        logger.info(
            f"期限切れスイープ完了: found={result.found}, expired={result.expired}, "
            f"skipped={result.skipped}, failed={len(result.failed)}"
        )
    return result
