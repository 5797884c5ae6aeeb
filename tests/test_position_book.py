import pytest

from swapbot.book.positions import PositionBook, returns_stdev
from swapbot.core.exceptions import AlreadyHeld, NotFound


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_open_and_update_track_pnl_and_extremes():
    clock = Clock()
    book = PositionBook(trailing_activation_pct=0.05, clock=clock)
    position = book.open("X", 2.0, 1.0)

    assert position.quantity == pytest.approx(0.5)
    assert position.unrealized_pnl_pct == 0.0
    assert "X" in book and book.count() == 1

    clock.now += 30
    book.update("X", 2.2)
    book.update("X", 1.9)

    assert position.peak_price == pytest.approx(2.2)
    assert position.trough_price == pytest.approx(1.9)
    assert position.unrealized_pnl_pct == pytest.approx(-0.05)
    assert position.unrealized_pnl == pytest.approx(0.5 * 1.9 - 1.0)
    assert position.drawdown_from_peak == pytest.approx(1 - 1.9 / 2.2)
    assert position.age(clock.now) == pytest.approx(30)
    assert position.volatility > 0
    assert position.trailing_stop_armed


def test_trailing_stop_not_armed_below_activation():
    book = PositionBook(trailing_activation_pct=0.10)
    book.open("X", 1.0, 1.0)
    book.update("X", 1.05)
    assert not book.get("X").trailing_stop_armed


def test_open_twice_is_a_conflict():
    book = PositionBook()
    book.open("X", 1.0, 1.0)
    with pytest.raises(AlreadyHeld) as excinfo:
        book.open("X", 1.1, 1.0)
    assert excinfo.value.mint == "X"
    assert book.get("X").entry_price == 1.0


def test_update_unknown_mint_raises_not_found():
    with pytest.raises(NotFound):
        PositionBook().update("missing", 1.0)


@pytest.mark.parametrize("price", [0.0, -1.0, float("nan")])
def test_open_rejects_bad_entry(price):
    with pytest.raises(ValueError):
        PositionBook().open("X", price, 1.0)


def test_remove_is_idempotent():
    book = PositionBook()
    book.open("X", 1.0, 1.0)
    assert book.remove("X") is not None
    assert book.remove("X") is None
    assert book.count() == 0


def test_totals_across_positions():
    book = PositionBook()
    book.open("A", 1.0, 1.0)
    book.open("B", 2.0, 2.0)
    book.update("A", 1.5)
    assert sorted(book.mints()) == ["A", "B"]
    assert book.total_value() == pytest.approx(1.5 + 2.0)
    assert book.total_unrealized_pnl() == pytest.approx(0.5)


def test_returns_stdev_needs_two_returns():
    assert returns_stdev([1.0]) == 0.0
    assert returns_stdev([1.0, 1.1]) == 0.0
    assert returns_stdev([1.0, 1.1, 1.0]) > 0
