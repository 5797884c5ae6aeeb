import pytest

from swapbot.book.positions import PositionBook
from swapbot.protection.price_miss import PriceMissTracker
from swapbot.protection.time_exit import NO_EXIT_REASON, TimeExitPolicy, TimeExitSettings
from swapbot.protection.trailing_stop import TrailingStop


class Clock:
    def __init__(self):
        self.now = 10_000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def book(clock):
    return PositionBook(trailing_activation_pct=0.05, clock=clock)


def test_time_exit_for_old_losing_position(clock, book):
    position = book.open("X", 1.0, 1.0)
    book.update("X", 0.97)
    policy = TimeExitPolicy(clock=clock)

    assert policy.analyze_time_based_exit(position).reason == NO_EXIT_REASON

    clock.now += 1800
    result = policy.analyze_time_based_exit(position)
    assert result.should_exit
    assert "unprofitable" in result.reason


def test_profitable_position_is_never_time_exited(clock, book):
    position = book.open("X", 1.0, 1.0)
    book.update("X", 1.01)
    clock.now += 100_000
    assert not TimeExitPolicy(clock=clock).analyze_time_based_exit(position).should_exit


def test_young_or_disabled_positions_hold(clock, book):
    position = book.open("X", 1.0, 1.0)
    book.update("X", 0.5)
    assert not TimeExitPolicy(clock=clock).analyze_time_based_exit(position, now=clock.now + 30).should_exit
    disabled = TimeExitPolicy(TimeExitSettings(enabled=False), clock=clock)
    assert not disabled.analyze_time_based_exit(position, now=clock.now + 5000).should_exit


def test_flat_exit_when_configured(clock, book):
    position = book.open("X", 1.0, 1.0)
    for _ in range(10):
        book.update("X", 0.995)
    policy = TimeExitPolicy(TimeExitSettings(flat_exit_sec=300, flat_window=5), clock=clock)
    result = policy.analyze_time_based_exit(position, now=clock.now + 301)
    assert result.should_exit
    assert result.reason.startswith("Flat")


def test_trailing_stop_follows_peak(book):
    stop = TrailingStop(trail_pct=0.03, hard_stop_pct=0.15)
    position = book.open("X", 1.0, 1.0)
    assert stop.stop_level(position) is None

    book.update("X", 1.10)
    assert stop.stop_level(position) == pytest.approx(1.067)
    book.update("X", 1.08)
    assert not stop.evaluate(position).should_exit
    book.update("X", 1.06)
    assert stop.evaluate(position).should_exit


def test_hard_stop_below_entry(book):
    position = book.open("X", 1.0, 1.0)
    book.update("X", 0.84)
    result = TrailingStop().evaluate(position)
    assert result.should_exit
    assert result.reason.startswith("Hard stop")


def test_price_miss_strikes_expire(clock):
    misses = PriceMissTracker(max_strikes=2, window_sec=60, clock=clock)
    assert misses.record_miss("X") == 1
    assert not misses.should_force_exit("X")
    assert misses.record_miss("X") == 2
    assert misses.should_force_exit("X")

    clock.now += 61
    assert misses.strikes("X") == 0
    misses.cleanup()
    assert not misses.should_force_exit("X")


def test_price_hit_resets_strikes(clock):
    misses = PriceMissTracker(max_strikes=2, clock=clock)
    misses.record_miss("X")
    misses.record_hit("X")
    assert misses.record_miss("X") == 1
