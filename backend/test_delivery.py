"""Tests for delivery.py: pace, pauses and timing variability from segments."""
import pytest

from delivery import CLARITY_PLACEHOLDER, analyze_delivery, classify_pace, classify_variability
from schemas import TranscriptSegment


def seg(text, start, end):
    return TranscriptSegment(text=text, start=start, end=end)


class TestClassifyPace:
    @pytest.mark.parametrize(
        "wpm, expected",
        [(150, 90), (60, 40), (200, 70), (100, 60), (120, 90), (190, 70), (80, 60)],
    )
    def test_bands(self, wpm, expected):
        assert classify_pace(wpm) == expected


class TestClassifyVariability:
    def test_bands(self):
        assert classify_variability(5) == 50
        assert classify_variability(20) == 70
        assert classify_variability(40) == 90
        assert classify_variability(80) == 75


class TestAnalyzeDelivery:
    def test_no_segments(self):
        metrics = analyze_delivery([])
        assert metrics.pace == 0
        assert metrics.clarity == 0
        assert metrics.variability == 0
        assert metrics.wpm == 0

    def test_wpm_and_pace(self):
        metrics = analyze_delivery([seg("a b c d e f g h i j", 0, 4)])
        assert metrics.wpm == 150
        assert metrics.pace == 90

    def test_zero_duration(self):
        metrics = analyze_delivery([seg("hello", 1.0, 1.0)])
        assert metrics.wpm == 0
        assert metrics.pace == 40

    def test_pauses_counted_over_half_second(self):
        metrics = analyze_delivery([
            seg("one two", 0.0, 2.0),
            seg("three four", 3.0, 5.0),
            seg("five six", 5.2, 7.0),
        ])
        assert metrics.pauses == 1
        assert metrics.total_pause_seconds == 1.0

    def test_variability_needs_more_than_five_samples(self):
        segments = [seg("a b", i, i + 1) for i in range(5)]
        assert analyze_delivery(segments).variability == 0

    def test_monotone_timing(self):
        segments = [seg("a b", i, i + 1) for i in range(6)]
        assert analyze_delivery(segments).variability == 50

    def test_natural_rhythm(self):
        # seconds per word alternate 0.3 / 0.6: coefficient of variation ~33%
        segments = []
        start = 0.0
        for i in range(6):
            length = 0.6 if i % 2 == 0 else 1.2
            segments.append(seg("a b", start, start + length))
            start += length
        assert analyze_delivery(segments).variability == 90

    def test_clarity_is_flagged_placeholder(self):
        metrics = analyze_delivery([seg("hello there", 0, 1)])
        assert metrics.clarity == CLARITY_PLACEHOLDER
        assert metrics.clarity_is_placeholder is True
