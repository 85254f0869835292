from datetime import timedelta

import pytest

from arvi.core.errors import NotFoundError
from arvi.features.energy import ledger
from arvi.features.energy.service import (
    force_recharge,
    get_energy,
    list_energy_transactions,
    needs_daily_recharge,
)
from arvi.features.habit_series.commit import HabitSeriesCommitter
from arvi.features.users.service import get_user
from arvi.models.habit_series import ActionDraft, Difficulty, HabitSeriesDraft


def test_needs_daily_recharge_boundaries(now):
    assert needs_daily_recharge(None, now)
    assert needs_daily_recharge(now - timedelta(hours=24), now)
    assert not needs_daily_recharge(now - timedelta(hours=23, minutes=59), now)


def test_naive_timestamps_are_treated_as_utc(now):
    naive = (now - timedelta(hours=25)).replace(tzinfo=None)
    assert needs_daily_recharge(naive, now)


def test_read_refills_to_plan_maximum_when_due(make_user, now):
    make_user("user_alice", plan="base", energy=12, last_recharged=now - timedelta(hours=30))

    snapshot = get_energy("user_alice", now=now)

    assert snapshot.recharged is True
    assert snapshot.current == 150
    assert snapshot.maximum == 150
    txs = list_energy_transactions("user_alice")
    assert len(txs) == 1
    assert txs[0].action == ledger.ACTION_DAILY_RECHARGE
    assert (txs[0].balance_before, txs[0].balance_after, txs[0].delta) == (12, 150, 138)


def test_read_within_window_leaves_balance_alone(make_user, now):
    make_user("user_alice", plan="base", energy=12, last_recharged=now - timedelta(hours=2))

    snapshot = get_energy("user_alice", now=now)

    assert snapshot.recharged is False
    assert snapshot.current == 12
    assert list_energy_transactions("user_alice") == []


def test_second_read_does_not_recharge_twice(make_user, now):
    make_user("user_alice", plan="mini", energy=5, last_recharged=now - timedelta(days=2))

    first = get_energy("user_alice", now=now)
    second = get_energy("user_alice", now=now + timedelta(minutes=5))

    assert first.recharged and not second.recharged
    assert second.current == 75
    assert len(list_energy_transactions("user_alice")) == 1


def test_freemium_never_recharges(make_user, now):
    make_user("user_bob", plan="freemium")

    snapshot = get_energy("user_bob", now=now)

    assert snapshot.plan == "freemium"
    assert snapshot.current == 0
    assert snapshot.recharged is False


def test_running_trial_recharges_to_trial_maximum(make_user, now):
    make_user(
        "user_bob",
        plan="freemium",
        energy=10,
        trial_started=now - timedelta(hours=30),
        last_recharged=now - timedelta(hours=30),
    )

    snapshot = get_energy("user_bob", now=now)

    assert snapshot.plan == "trial"
    assert snapshot.current == 135


def test_force_recharge_ignores_window(make_user, now):
    make_user("user_alice", plan="base", energy=20, last_recharged=now - timedelta(minutes=10))

    snapshot = force_recharge("user_alice", now=now)

    assert snapshot.current == 150
    assert snapshot.recharged is True
    assert list_energy_transactions("user_alice")[0].action == ledger.ACTION_FORCE_RECHARGE


def test_transactions_are_newest_first_and_limited(make_user, now):
    make_user("user_alice", plan="base", energy=100, last_recharged=now - timedelta(hours=1))
    draft = HabitSeriesDraft(
        title="Focus",
        description="Deep work blocks.",
        actions=[ActionDraft(name=f"Block {i}", description="90 minutes.", difficulty=Difficulty.LOW) for i in range(3)],
    )
    committer = HabitSeriesCommitter()
    committer.commit("user_alice", draft, 10, now=now)
    committer.commit("user_alice", draft, 7, now=now + timedelta(minutes=1))

    txs = list_energy_transactions("user_alice", limit=5)
    assert [tx.delta for tx in txs] == [-7, -10]
    assert txs[0].balance_after == 83
    assert len(list_energy_transactions("user_alice", limit=1)) == 1
    assert get_user("user_alice").energy.total_consumed == 17


def test_unknown_user_is_not_found(now):
    with pytest.raises(NotFoundError):
        get_energy("ghost", now=now)
    with pytest.raises(NotFoundError):
        force_recharge("ghost", now=now)
    with pytest.raises(NotFoundError):
        list_energy_transactions("ghost")
