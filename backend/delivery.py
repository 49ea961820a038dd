from __future__ import annotations

import numpy as np

from schemas import DeliveryMetrics, TranscriptSegment

PAUSE_GAP_SECONDS = 0.5
MIN_VARIABILITY_SAMPLES = 5
CLARITY_PLACEHOLDER = 85  # no per-segment confidence signal is available


def classify_pace(wpm: float) -> int:
    """Score words-per-minute against the 120-190 wpm band."""
    if wpm < 80:
        return 40
    if wpm < 120:
        return 60
    if wpm < 190:
        return 90
    return 70


def classify_variability(coefficient: float) -> int:
    if coefficient < 10:
        return 50  # monotone
    if coefficient < 25:
        return 70
    if coefficient < 50:
        return 90
    return 75  # erratic


def _segment_word_count(segment: TranscriptSegment) -> int:
    return len(segment.text.split())


def analyze_delivery(segments: list[TranscriptSegment]) -> DeliveryMetrics:
    """
    Delivery metrics from timestamped transcript segments.

    Segments are assumed ordered by start time. A gap over half a second
    between consecutive segments is one pause. Variability is the
    coefficient of variation of per-segment seconds-per-word and needs more
    than five samples; otherwise it stays 0.
    """
    if not segments:
        return DeliveryMetrics()

    total_words = 0
    total_duration = 0.0
    total_pause = 0.0
    pauses = 0
    word_durations: list[float] = []

    for current, following in zip(segments, [*segments[1:], None]):
        duration = current.end - current.start
        words = _segment_word_count(current)
        total_words += words
        total_duration += duration

        if words > 0 and duration / words > 0:
            word_durations.append(duration / words)

        if following is not None:
            gap = following.start - current.end
            if gap > PAUSE_GAP_SECONDS:
                pauses += 1
                total_pause += gap

    wpm = total_words / (total_duration / 60) if total_duration > 0 else 0.0

    variability = 0
    if len(word_durations) > MIN_VARIABILITY_SAMPLES:
        samples = np.asarray(word_durations, dtype=np.float64)
        coefficient = float(np.std(samples) / np.mean(samples)) * 100
        variability = classify_variability(coefficient)

    return DeliveryMetrics(
        pace=classify_pace(wpm),
        clarity=CLARITY_PLACEHOLDER,
        clarity_is_placeholder=True,
        variability=variability,
        wpm=round(wpm, 2),
        pauses=pauses,
        total_pause_seconds=round(total_pause, 2),
    )
