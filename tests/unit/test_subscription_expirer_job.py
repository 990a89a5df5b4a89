"""スケジューラジョブ (expire_subscriptions) のテスト"""
from datetime import timedelta
from unittest.mock import MagicMock

from realty_billing.models.subscription import UserSubscription
from realty_billing.scheduler import subscription_expirer


def test_job_writes_heartbeat_and_expires(monkeypatch, session_factory, machine, seed, now, db):
    sub = machine.create(seed["user"].id, seed["short"].id, seed["rent"].id, seed["kazan"].id, now)
    machine.activate(sub.id, seed["admin"].id, "cash", now)

    redis = MagicMock()
    monkeypatch.setattr(subscription_expirer, "get_sync_redis", lambda: redis)
    monkeypatch.setattr(subscription_expirer, "SessionLocal", session_factory)
    monkeypatch.setattr(subscription_expirer, "utcnow", lambda: now + timedelta(hours=49))

    subscription_expirer.expire_subscriptions()

    redis.set.assert_called_once()
    key, value = redis.set.call_args.args
    assert key == subscription_expirer.HEARTBEAT_KEY
    assert value == (now + timedelta(hours=49)).isoformat()
    assert redis.set.call_args.kwargs["ex"] == subscription_expirer.settings.SWEEP_INTERVAL_MINUTES * 120
    db.expire_all()
    assert db.get(UserSubscription, sub.id).status == "expired"


def test_job_survives_redis_outage(monkeypatch, session_factory, seed):
    def broken():
        raise ConnectionError("redis down")

    monkeypatch.setattr(subscription_expirer, "get_sync_redis", broken)
    monkeypatch.setattr(subscription_expirer, "SessionLocal", session_factory)

    subscription_expirer.expire_subscriptions()


def test_heartbeat_outlives_sweep_interval(monkeypatch):
    monkeypatch.setattr(subscription_expirer.settings, "SWEEP_INTERVAL_MINUTES", 15)
    assert subscription_expirer.heartbeat_ttl() == 1800
