"""SubscriptionStateMachine の遷移テスト"""
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from realty_billing.core.exceptions import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFound,
    SubscriptionError,
)
from realty_billing.models.subscription import UserSubscription
from realty_billing.models.subscription_history import SubscriptionHistory
from realty_billing.services.price_catalog import PriceCatalog
from realty_billing.services.subscription_machine import (
    SubscriptionStateMachine,
    append_note,
    remaining_hours,
)


def _pending(machine, seed, now, tariff="premium", location="kazan"):
    return machine.create(
        seed["user"].id, seed[tariff].id, seed["rent"].id, seed[location].id, now,
    )


def _active(machine, seed, now, tariff="premium", location="kazan"):
    sub = _pending(machine, seed, now, tariff=tariff, location=location)
    return machine.activate(sub.id, seed["admin"].id, "cash", now)


class TestHelpers:

    def test_append_note_concatenates(self):
        assert append_note(None, "a") == "a"
        assert append_note("a", "b") == "a; b"
        assert append_note("a", None) == "a"
        assert append_note("a", "") == "a"

    def test_remaining_hours_rounds_up(self):
        now = datetime(2026, 3, 1, 12, 0)
        assert remaining_hours(now + timedelta(hours=10), now) == 10
        assert remaining_hours(now + timedelta(hours=9, minutes=30), now) == 10
        assert remaining_hours(now + timedelta(seconds=1), now) == 1
        assert remaining_hours(now, now) == 0
        assert remaining_hours(now - timedelta(hours=3), now) == 0


class TestCreate:

    def test_user_request_is_pending(self, machine, seed, now, history_of):
        sub = _pending(machine, seed, now)

        assert sub.status == "pending"
        assert sub.start_date is None
        assert sub.end_date is None
        assert sub.is_enabled is True
        assert sub.price_paid == Decimal("5000")
        entries = history_of(sub.id)
        assert [e.action for e in entries] == ["requested"]
        assert entries[0].action_date == now

    def test_location_price_override(self, machine, seed, now):
        sub = _pending(machine, seed, now, location="moscow")
        assert sub.price_paid == Decimal("6500")

    def test_admin_create_records_created(self, machine, seed, now, history_of):
        sub = machine.create(
            seed["user"].id, seed["basic"].id, seed["rent"].id, seed["kazan"].id, now,
            admin_id=seed["admin"].id, notes="по звонку",
        )
        assert sub.status == "pending"
        assert sub.admin_notes == "по звонку"
        assert [e.action for e in history_of(sub.id)] == ["created"]

    def test_admin_create_with_auto_activate(self, machine, seed, now, history_of):
        sub = machine.create(
            seed["user"].id, seed["basic"].id, seed["rent"].id, seed["kazan"].id, now,
            admin_id=seed["admin"].id, auto_activate=True, payment_method="card",
            duration_hours=100, price=Decimal("999"),
        )
        assert sub.status == "active"
        assert sub.end_date == now + timedelta(hours=100)
        assert sub.price_paid == Decimal("999")
        assert sub.payment_method == "card"
        assert [e.action for e in history_of(sub.id)] == ["created", "activated"]

    def test_auto_activate_requires_payment_method(self, machine, seed, now, db):
        with pytest.raises(SubscriptionError):
            machine.create(
                seed["user"].id, seed["basic"].id, seed["rent"].id, seed["kazan"].id, now,
                admin_id=seed["admin"].id, auto_activate=True,
            )
        assert db.query(UserSubscription).count() == 0

    def test_failed_auto_activate_leaves_nothing(self, machine, seed, now, db):
        with pytest.raises(SubscriptionError) as exc:
            machine.create(
                seed["user"].id, seed["basic"].id, seed["rent"].id, seed["kazan"].id, now,
                admin_id=seed["admin"].id, auto_activate=True, payment_method="card",
                duration_hours=0,
            )
        assert exc.value.code == "validation_error"
        assert db.query(UserSubscription).count() == 0
        assert db.query(SubscriptionHistory).count() == 0

    def test_unknown_references(self, machine, seed, now, db):
        with pytest.raises(NotFound):
            machine.create(seed["user"].id, 999, seed["rent"].id, seed["kazan"].id, now)
        with pytest.raises(NotFound):
            machine.create(seed["user"].id, seed["basic"].id, 999, seed["kazan"].id, now)
        with pytest.raises(NotFound):
            machine.create(seed["user"].id, seed["basic"].id, seed["rent"].id, 999, now)
        assert db.query(UserSubscription).count() == 0


class TestActivate:

    def test_premium_activation(self, machine, seed, now, history_of):
        """720時間 / 5000 の料金プランを有効化"""
        sub = _pending(machine, seed, now)
        sub = machine.activate(sub.id, seed["admin"].id, "cash", now, notes="оплачено")

        assert sub.status == "active"
        assert sub.start_date == now
        assert sub.end_date == now + timedelta(hours=720)
        assert sub.price_paid == Decimal("5000")
        assert sub.approved_by == seed["admin"].id
        assert sub.approved_at == now
        assert sub.admin_notes == "оплачено"
        entries = history_of(sub.id)
        assert [e.action for e in entries] == ["requested", "activated"]
        assert entries[-1].tariff_name == "Премиум"
        assert entries[-1].location_name == "Казань, Республика Татарстан"
        assert entries[-1].price_paid == Decimal("5000")

    def test_activate_twice_is_rejected(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        with pytest.raises(InvalidTransition):
            machine.activate(sub.id, seed["admin"].id, "cash", now + timedelta(hours=1))
        assert len(history_of(sub.id)) == 2

    def test_reactivate_expired(self, machine, seed, now):
        sub = _active(machine, seed, now, tariff="short")
        later = now + timedelta(hours=50)
        assert machine.expire(sub.id, later) is True

        sub = machine.activate(sub.id, seed["admin"].id, "card", later, notes="повторно")
        assert sub.status == "active"
        assert sub.start_date == later
        assert sub.end_date == later + timedelta(hours=48)

    def test_duration_override(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        sub = machine.activate(sub.id, seed["admin"].id, "cash", now, duration_hours=5)
        assert sub.end_date == now + timedelta(hours=5)

    def test_non_positive_duration_rolls_back(self, machine, seed, now, history_of, db):
        sub = _pending(machine, seed, now)
        with pytest.raises(SubscriptionError):
            machine.activate(sub.id, seed["admin"].id, "cash", now, duration_hours=0)
        db.expire_all()
        assert db.get(UserSubscription, sub.id).status == "pending"
        assert len(history_of(sub.id)) == 1

    def test_unknown_subscription(self, machine, seed, now):
        with pytest.raises(NotFound):
            machine.activate(12345, seed["admin"].id, "cash", now)


class TestCancel:

    def test_cancel_keeps_end_date(self, machine, seed, now, history_of):
        sub = _pending(machine, seed, now)
        sub = machine.activate(sub.id, seed["admin"].id, "cash", now)
        end_date = sub.end_date

        sub = machine.cancel(sub.id, now + timedelta(hours=1))

        assert sub.status == "cancelled"
        assert sub.end_date == end_date
        actions = [e.action for e in history_of(sub.id)]
        assert actions[-2:] == ["activated", "cancelled"]

    def test_double_cancel_fails(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        machine.cancel(sub.id, now, reason="просьба клиента")
        with pytest.raises(InvalidTransition):
            machine.cancel(sub.id, now)
        entries = history_of(sub.id)
        assert [e.action for e in entries].count("cancelled") == 1
        assert entries[-1].notes == "просьба клиента"

    def test_cancel_pending_and_extend_pending(self, machine, seed, now):
        pending = _pending(machine, seed, now)
        assert machine.cancel(pending.id, now).status == "cancelled"

        sub = _active(machine, seed, now, location="moscow")
        machine.request_extension(sub.id, seed["user"].id, seed["premium"].id, now)
        sub = machine.cancel(sub.id, now)
        assert sub.status == "cancelled"
        assert sub.requested_tariff_id is None

    def test_cancel_expired_is_rejected(self, machine, seed, now):
        sub = _active(machine, seed, now, tariff="short")
        machine.expire(sub.id, now + timedelta(hours=48))
        with pytest.raises(InvalidTransition):
            machine.cancel(sub.id, now + timedelta(hours=49))

    def test_cancel_by_other_user(self, machine, seed, now):
        sub = _active(machine, seed, now)
        with pytest.raises(NotFound):
            machine.cancel(sub.id, now, user_id=seed["other"].id)


class TestExtendByAdmin:

    def test_extension_stacks_on_remaining_time(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        later = now + timedelta(hours=710)
        remaining = sub.end_date - later

        sub = machine.extend_by_admin(sub.id, seed["admin"].id, "card", later)

        assert sub.status == "active"
        assert sub.end_date == later + timedelta(hours=720) + remaining
        assert sub.start_date == now
        assert history_of(sub.id)[-1].action == "extended"

    def test_extend_expired_starts_from_now(self, machine, seed, now):
        sub = _active(machine, seed, now, tariff="short")
        later = now + timedelta(hours=100)
        machine.expire(sub.id, later)

        sub = machine.extend_by_admin(
            sub.id, seed["admin"].id, "card", later, new_price=Decimal("700"), notes="скидка",
        )
        assert sub.status == "active"
        assert sub.end_date == later + timedelta(hours=48)
        assert sub.price_paid == Decimal("700")
        assert sub.admin_notes == "скидка"

    def test_extend_active_with_past_end_date_starts_from_now(self, machine, seed, now):
        """スイーパー未処理の期限切れ"""
        sub = _active(machine, seed, now, tariff="short")
        later = now + timedelta(hours=60)
        sub = machine.extend_by_admin(sub.id, seed["admin"].id, "card", later)
        assert sub.end_date == later + timedelta(hours=48)

    def test_extend_approves_extension_request(self, machine, seed, now):
        sub = _active(machine, seed, now)
        machine.request_extension(sub.id, seed["user"].id, seed["short"].id, now)

        sub = machine.extend_by_admin(sub.id, seed["admin"].id, "card", now, duration_hours=24)
        assert sub.status == "active"
        assert sub.requested_tariff_id is None
        assert sub.end_date == now + timedelta(hours=720 + 24)

    def test_extend_cancelled_is_rejected(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        machine.cancel(sub.id, now)
        with pytest.raises(InvalidTransition):
            machine.extend_by_admin(sub.id, seed["admin"].id, "card", now)
        assert history_of(sub.id)[-1].action == "cancelled"

    def test_extend_pending_starts_from_now(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        sub = machine.extend_by_admin(sub.id, seed["admin"].id, "card", now)
        assert sub.status == "active"
        assert sub.start_date == now
        assert sub.end_date == now + timedelta(hours=720)


class TestUpdateTariff:

    def test_remaining_hours_carried_over(self, machine, seed, now, history_of):
        """残り10時間 + 48時間の料金プラン → 58時間後に終了"""
        sub = _pending(machine, seed, now)
        machine.activate(sub.id, seed["admin"].id, "cash", now, duration_hours=10)

        sub = machine.update_tariff(sub.id, seed["short"].id, seed["admin"].id, now)

        assert sub.tariff_id == seed["short"].id
        assert sub.start_date == now
        assert sub.end_date == now + timedelta(hours=58)
        assert sub.price_paid == Decimal("800")
        entry = history_of(sub.id)[-1]
        assert entry.action == "tariff_changed"
        assert entry.tariff_name == "Премиум 2 дня"

    def test_partial_hour_rounds_up(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        machine.activate(sub.id, seed["admin"].id, "cash", now, duration_hours=10)
        later = now + timedelta(minutes=30)

        sub = machine.update_tariff(sub.id, seed["short"].id, seed["admin"].id, later)
        assert sub.end_date == later + timedelta(hours=58)

    def test_expired_subscription_gets_fresh_period(self, machine, seed, now):
        sub = _active(machine, seed, now, tariff="short")
        later = now + timedelta(hours=100)
        machine.expire(sub.id, later)

        sub = machine.update_tariff(
            sub.id, seed["basic"].id, seed["admin"].id, later, new_price=Decimal("1200"),
            payment_method="card",
        )
        assert sub.status == "active"
        assert sub.is_enabled is True
        assert sub.end_date == later + timedelta(hours=240)
        assert sub.price_paid == Decimal("1200")
        assert sub.payment_method == "card"

    def test_cancelled_is_rejected(self, machine, seed, now):
        sub = _active(machine, seed, now)
        machine.cancel(sub.id, now)
        with pytest.raises(InvalidTransition):
            machine.update_tariff(sub.id, seed["short"].id, seed["admin"].id, now)

    def test_unknown_tariff(self, machine, seed, now):
        sub = _active(machine, seed, now)
        with pytest.raises(NotFound):
            machine.update_tariff(sub.id, 999, seed["admin"].id, now)


class TestRequestExtension:

    def test_moves_to_extend_pending(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        end_date, price = sub.end_date, sub.price_paid

        sub = machine.request_extension(sub.id, seed["user"].id, seed["short"].id, now, notes="ещё месяц")

        assert sub.status == "extend_pending"
        assert sub.end_date == end_date
        assert sub.price_paid == price
        assert sub.requested_tariff_id == seed["short"].id
        assert history_of(sub.id)[-1].action == "extend_requested"

    def test_only_owner(self, machine, seed, now):
        sub = _active(machine, seed, now)
        with pytest.raises(NotFound):
            machine.request_extension(sub.id, seed["other"].id, seed["premium"].id, now)

    def test_only_from_active(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        with pytest.raises(InvalidTransition):
            machine.request_extension(sub.id, seed["user"].id, seed["premium"].id, now)

    def test_inactive_tariff(self, machine, seed, now):
        sub = _active(machine, seed, now)
        with pytest.raises(NotFound):
            machine.request_extension(sub.id, seed["user"].id, seed["retired"].id, now)


class TestToggleEnabled:

    def test_same_value_is_noop(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        before = len(history_of(sub.id))

        assert machine.toggle_enabled(sub.id, True, now) is False
        assert len(history_of(sub.id)) == before

    def test_disable_and_enable(self, machine, seed, now, history_of, db):
        sub = _active(machine, seed, now)

        assert machine.toggle_enabled(sub.id, False, now, user_id=seed["user"].id) is True
        assert db.get(UserSubscription, sub.id).is_enabled is False
        assert machine.toggle_enabled(sub.id, True, now) is True
        assert [e.action for e in history_of(sub.id)][-2:] == ["disabled", "enabled"]

    def test_only_active(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        with pytest.raises(InvalidTransition):
            machine.toggle_enabled(sub.id, False, now)

    def test_other_user(self, machine, seed, now):
        sub = _active(machine, seed, now)
        with pytest.raises(NotFound):
            machine.toggle_enabled(sub.id, False, now, user_id=seed["other"].id)


class TestExpire:

    def test_expire_pending_is_rejected(self, machine, seed, now, history_of):
        sub = _pending(machine, seed, now)
        before = len(history_of(sub.id))
        with pytest.raises(InvalidTransition):
            machine.expire(sub.id, now)
        assert len(history_of(sub.id)) == before

    def test_expire_once(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now, tariff="short")
        later = now + timedelta(hours=48)

        assert machine.expire(sub.id, later) is True
        assert machine.expire(sub.id, later) is False
        assert [e.action for e in history_of(sub.id)].count("expired") == 1

    def test_future_end_date_is_noop(self, machine, seed, now, history_of):
        sub = _active(machine, seed, now)
        assert machine.expire(sub.id, now + timedelta(hours=1)) is False
        assert history_of(sub.id)[-1].action == "activated"


class TestConcurrency:

    def test_version_increments(self, machine, seed, now):
        sub = _pending(machine, seed, now)
        assert sub.version == 1
        sub = machine.activate(sub.id, seed["admin"].id, "cash", now)
        assert sub.version == 2

    def test_stale_write_raises_conflict(self, session_factory, seed, now, history_of, monkeypatch):
        other_session = session_factory()
        try:
            first = SubscriptionStateMachine(other_session, PriceCatalog(other_session))
            sub = first.create(
                seed["user"].id, seed["premium"].id, seed["rent"].id, seed["kazan"].id, now,
            )
            sub_id = sub.id
            stale = other_session.get(UserSubscription, sub_id)
            stale_status = stale.status

            second_session = session_factory()
            try:
                second = SubscriptionStateMachine(second_session, PriceCatalog(second_session))
                second.activate(sub_id, seed["admin"].id, "cash", now)
            finally:
                second_session.close()

            assert stale_status == "pending"
            monkeypatch.setattr(first, "_lock", lambda subscription_id: stale)
            with pytest.raises(ConcurrencyConflict):
                first.cancel(sub_id, now)
        finally:
            other_session.close()

        assert [e.action for e in history_of(sub_id)] == ["requested", "activated"]

class TestAtomic:

    def test_inner_failure_rolls_back_whole_unit(self, machine, seed, now, db):
        first = _active(machine, seed, now)
        first_id = first.id

        with pytest.raises(InvalidTransition):
            with machine.atomic():
                machine.cancel(first_id, now, reason="x")
                machine.activate(first_id, seed["admin"].id, "cash", now)

        db.expire_all()
        assert db.get(UserSubscription, first_id).status == "active"
        assert [e.action for e in db.query(SubscriptionHistory).order_by(SubscriptionHistory.id)] == [
            "requested", "activated",
        ]

    def test_nested_steps_commit_once(self, machine, seed, now, db, monkeypatch):
        sub = _active(machine, seed, now)
        commit = MagicMock(wraps=db.commit)
        monkeypatch.setattr(db, "commit", commit)

        with machine.atomic():
            machine.toggle_enabled(sub.id, False, now)
            machine.cancel(sub.id, now)

        commit.assert_called_once()
        db.expire_all()
        assert db.get(UserSubscription, sub.id).status == "cancelled"
