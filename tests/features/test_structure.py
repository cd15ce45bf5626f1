from strategylab.features.liquidity import LiquidityZone
from strategylab.features.structure import StructureBreak, detect_structure_breaks


def _zone(candles, index, price, is_high):
    return LiquidityZone(index, candles[index].timestamp, price, is_high, 2, index + 1)


def _lower_highs_lower_lows(candles):
    return [
        _zone(candles, 1, 110.0, True),
        _zone(candles, 3, 100.0, False),
        _zone(candles, 5, 108.0, True),
        _zone(candles, 7, 98.0, False),
    ]


def test_choch_both_ways(make_candles):
    closes = [103.0] * 13
    closes[10], closes[12] = 109.0, 97.0
    candles = make_candles(closes)

    events = detect_structure_breaks(candles, _lower_highs_lower_lows(candles))

    assert [(e.index, e.kind) for e in events] == [
        (10, StructureBreak.BULLISH_CHOCH),
        (12, StructureBreak.BEARISH_CHOCH),
    ]
    assert events[0].level == 108.0 and events[0].swing_index == 5
    assert events[1].level == 98.0 and events[1].swing_index == 7
    assert events[0].kind.bullish and events[0].kind.is_choch
    assert not events[1].kind.bullish


def test_confirm_bars_delay_the_break(make_candles):
    closes = [103.0] * 13
    closes[10], closes[11] = 109.0, 110.0
    candles = make_candles(closes)

    events = detect_structure_breaks(candles, _lower_highs_lower_lows(candles), confirm_bars=1)
    assert [(e.index, e.kind) for e in events] == [(11, StructureBreak.BULLISH_CHOCH)]


def test_break_with_trend_is_bos_and_fires_once(make_candles):
    closes = [103.0] * 13
    closes[10], closes[11] = 111.0, 112.0
    candles = make_candles(closes)
    swings = [
        _zone(candles, 1, 108.0, True),
        _zone(candles, 3, 98.0, False),
        _zone(candles, 5, 110.0, True),
        _zone(candles, 7, 100.0, False),
    ]

    events = detect_structure_breaks(candles, swings)
    assert [(e.index, e.kind) for e in events] == [(10, StructureBreak.BULLISH_BOS)]
    assert not events[0].kind.is_choch


def test_unconfirmed_swings_are_not_used(make_candles):
    closes = [103.0] * 13
    closes[10] = 109.0
    candles = make_candles(closes)
    swings = _lower_highs_lower_lows(candles)
    swings[2].confirmed_at = 10

    events = detect_structure_breaks(candles, swings)
    assert all(e.index != 10 or e.level != 108.0 for e in events)


def test_no_events_without_two_highs_and_lows(make_candles):
    candles = make_candles([103.0] * 8 + [120.0, 80.0])
    swings = [_zone(candles, 1, 110.0, True), _zone(candles, 3, 100.0, False)]
    assert detect_structure_breaks(candles, swings) == []
