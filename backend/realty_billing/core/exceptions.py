"""購読ドメインの例外

ルーターでは SubscriptionError をまとめて JSON エラーに変換する (main.py)。
"""
from typing import Optional


class SubscriptionError(Exception):
    """購読操作の基底例外"""

    status_code = 400
    code = "subscription_error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidTransition(SubscriptionError):
    """現在のステータスからは実行できない操作"""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, action: str, status: str):
        super().__init__(f"'{action}' is not allowed from status '{status}'")
        self.action = action
        self.status = status


class NotFound(SubscriptionError):
    """購読・料金プラン・カテゴリ・ロケーションが存在しない"""

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConcurrencyConflict(SubscriptionError):
    """同一購読への同時更新を検出。最新状態を読み直して再実行すること"""

    status_code = 409
    code = "concurrency_conflict"

    def __init__(self, subscription_id: Optional[int] = None):
        target = f"subscription {subscription_id}" if subscription_id is not None else "subscription"
        super().__init__(f"{target} was modified concurrently")
        self.subscription_id = subscription_id


class RequestRejected(SubscriptionError):
    """ユーザーの購読申込がビジネスルールで拒否された"""

    status_code = 400
