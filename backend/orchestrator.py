from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Protocol

from errors import AnalysisFailedError, InputValidationError, ProviderError
from feedback import empty_analysis
from language.lexical import extract_stats
from schemas import AnalyzeSpeechRequest, CompositeAnalysis, SpeechInput

logger = logging.getLogger(__name__)

TAG_PRIMARY = "primary"
TAG_SECONDARY = "secondary"
TAG_FALLBACK = "fallback"
TAG_NONE = "none"


class ProviderAnalyzer(Protocol):
    async def analyze(self, speech: SpeechInput) -> CompositeAnalysis: ...


class LocalAnalyzer(Protocol):
    def analyze(self, speech: SpeechInput) -> CompositeAnalysis: ...


class State(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    LOCAL = "local"


def validate_request(request: AnalyzeSpeechRequest) -> SpeechInput:
    if not isinstance(request.transcript, str):
        raise InputValidationError("transcript is required.")
    duration = request.duration
    if duration is None or not math.isfinite(duration) or duration <= 0:
        raise InputValidationError("duration must be a positive number of seconds.")
    return SpeechInput(transcript=request.transcript, duration=duration, pose=request.pose_data)


class ProviderFallbackOrchestrator:
    """
    One analysis run through the provider fallback chain.

    PRIMARY: success is final. A provider failure (quota, rate limit, timeout
    or a transient error that left nothing usable) moves to SECONDARY; any
    other exception is terminal and raises AnalysisFailedError.
    SECONDARY: success is final; any failure (or no secondary configured)
    moves to LOCAL. LOCAL: the deterministic analyzer, which cannot fail.
    No state is retried.
    """

    def __init__(
        self,
        primary: ProviderAnalyzer | None,
        secondary: ProviderAnalyzer | None,
        local: LocalAnalyzer,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.local = local

    async def run(self, request: AnalyzeSpeechRequest) -> tuple[CompositeAnalysis, str]:
        speech = validate_request(request)

        stats = extract_stats(speech.transcript, speech.duration)
        if stats.is_empty:
            logger.info("Empty transcript; returning no-speech result")
            return empty_analysis(), TAG_NONE

        logger.info(
            "Analyzing speech: %d words over %.1fs (pose data: %s)",
            stats.word_count, speech.duration, speech.pose is not None,
        )

        state = State.PRIMARY
        while True:
            if state is State.PRIMARY:
                if self.primary is None:
                    logger.warning("No primary provider configured; using secondary")
                    state = State.SECONDARY
                    continue
                try:
                    return await self.primary.analyze(speech), TAG_PRIMARY
                except ProviderError as exc:
                    logger.warning("Primary provider unavailable (%s): %s", type(exc).__name__, exc)
                    state = State.SECONDARY
                except Exception as exc:
                    logger.exception("Primary analysis failed")
                    raise AnalysisFailedError(f"Primary analysis failed: {exc}") from exc

            elif state is State.SECONDARY:
                if self.secondary is None:
                    logger.warning("No secondary provider configured; using deterministic analysis")
                    state = State.LOCAL
                    continue
                try:
                    return await self.secondary.analyze(speech), TAG_SECONDARY
                except Exception as exc:
                    logger.warning("Secondary provider failed (%s): %s", type(exc).__name__, exc)
                    state = State.LOCAL

            else:
                return self.local.analyze(speech), TAG_FALLBACK
