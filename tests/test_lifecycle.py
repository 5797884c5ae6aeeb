import pytest

from swapbot.core.exceptions import InvalidTick, StateConflict
from swapbot.data.discovery import TokenMeta
from swapbot.data.market_types import Tick
from swapbot.orchestrator.lifecycle import (
    STATE_DISCOVERED,
    STATE_DISPOSED,
    STATE_HELD,
    TokenRecord,
    can_reenter,
    is_stale,
)
from swapbot.orchestrator.validator import validate_discovery, validate_tick

CONFIG = {"validation": {"max_age_sec": 300, "allowed_sources": ["pumpfun", "whitelist"]}}


def _record(**meta):
    return TokenRecord(meta=TokenMeta(mint="X", discovered_at=0.0, **meta), registered_at=0.0)


def test_record_follows_one_way_lifecycle():
    record = _record(price_history=[1.0, 0.0, 1.2])
    assert list(record.prices) == [1.0, 1.2]
    assert record.status == STATE_DISCOVERED

    record.transition(STATE_HELD)
    record.transition(STATE_DISPOSED)
    with pytest.raises(StateConflict):
        record.transition(STATE_HELD)


def test_cannot_dispose_what_was_never_held():
    with pytest.raises(StateConflict):
        _record().transition(STATE_DISPOSED)


def test_reentry_lockout_doubles_after_forced_exit():
    record = _record()
    record.transition(STATE_HELD)
    record.transition(STATE_DISPOSED)
    record.disposed_at = 100.0

    assert not can_reenter(record, 399.0, 300)
    assert can_reenter(record, 400.0, 300)

    record.last_exit_forced = True
    assert not can_reenter(record, 400.0, 300)
    assert can_reenter(record, 700.0, 300)


def test_only_idle_discovered_records_go_stale():
    record = _record()
    assert not is_stale(record, 500.0, 600)
    assert is_stale(record, 601.0, 600)
    record.transition(STATE_HELD)
    assert not is_stale(record, 10_000.0, 600)


def test_validate_discovery_reasons():
    fresh = TokenMeta(mint="X", source="pumpfun", discovered_at=1000.0)
    assert validate_discovery(fresh, 1100.0, CONFIG) == []

    stale = TokenMeta(mint="X", source="boost", discovered_at=0.0, price_history=[1.0, -2.0])
    assert validate_discovery(stale, 1000.0, CONFIG) == [
        "REJECT_STALE_LISTING",
        "REJECT_UNKNOWN_SOURCE",
        "REJECT_BAD_PRICE_HISTORY",
    ]

    future = TokenMeta(mint=" ", source="pumpfun", discovered_at=2000.0)
    assert validate_discovery(future, 1000.0, CONFIG) == ["REJECT_MISSING_MINT", "REJECT_FUTURE_TIMESTAMP"]


@pytest.mark.parametrize(
    "tick",
    [
        Tick(mint="Y", price=1.0),
        Tick(mint="X", price=0.0),
        Tick(mint="X", price=float("inf")),
        Tick(mint="X", price=1.0, volume=-1.0),
    ],
)
def test_validate_tick_rejects_bad_data(tick):
    with pytest.raises(InvalidTick):
        validate_tick(tick, "X")
