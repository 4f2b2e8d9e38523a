from decimal import Decimal

import pytest

from whale_tracker.engines.filters import (
    format_hold_duration,
    format_percent,
    format_usd,
    should_notify_buy,
    should_notify_sell,
)


def test_buy_threshold_boundary():
    assert not should_notify_buy(Decimal("999.99"))
    assert should_notify_buy(Decimal("1000.00"))
    assert should_notify_buy(Decimal("25"), minimum=Decimal("10"))


def test_every_sell_is_notified():
    assert should_notify_sell()


@pytest.mark.parametrize("seconds, expected", [
    (0, "0s"),
    (59, "59s"),
    (60, "1m"),
    (3599, "59m"),
    (3600, "1h"),
    (5400, "1h 30m"),
    (86400, "1d"),
    (187200, "2d 4h"),
])
def test_format_hold_duration(seconds, expected):
    assert format_hold_duration(seconds) == expected


def test_format_usd():
    assert format_usd(Decimal("10")) == "$10.00"
    assert format_usd(Decimal("1500")) == "$1.50K"
    assert format_usd(Decimal("2500000")) == "$2.50M"
    assert format_usd(Decimal("-250.5")) == "-$250.50"


def test_format_percent():
    assert format_percent(Decimal("40")) == "+40.00%"
    assert format_percent(Decimal("-12.346")) == "-12.35%"
    assert format_percent(None) == "n/a"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
