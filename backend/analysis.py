from __future__ import annotations

import asyncio
import logging

from errors import ProviderQuotaError, ProviderTransientError
from feedback import (
    MAX_ACTION_ITEMS,
    SUMMARY_FALLBACK,
    SUMMARY_FALLBACK_ACTIONS,
    compose_content,
    compose_overall,
    sanitize_analysis,
)
from language.lexical import extract_stats
from language.scoring import MIN_WORDS_FOR_AI, analyze_language, clamp
from llm import InsightProvider
from non_verbal.pose import body_language_from_pose
from schemas import (
    BodyLanguageAnalysis,
    CompositeAnalysis,
    ConfidenceAnalysis,
    LanguageAnalysis,
    PoseSummary,
    SpeechContent,
    SpeechInput,
    StructureAnalysis,
)

logger = logging.getLogger(__name__)

NEUTRAL = 50.0
MAX_CONTENT_INSIGHTS = 5


def _sub_score(scores: dict[str, float], key: str) -> float:
    return round(clamp(scores.get(key, NEUTRAL)))


class FanOutAnalyzer:
    """
    Provider-backed analysis that fans out one call per dimension.

    Language, structure, confidence and body language run concurrently, each
    behind its own failure boundary with a neutral default. After the join, a
    quota failure caught by any boundary is re-raised, and a run in which every
    provider call failed raises ProviderTransientError, so the orchestrator
    moves to the secondary provider instead of returning only defaults.
    """

    def __init__(self, provider: InsightProvider) -> None:
        self.provider = provider

    @property
    def name(self) -> str:
        return self.provider.name

    async def _structure(self, transcript: str, failures: list[Exception]) -> StructureAnalysis:
        try:
            insight = await self.provider.score(transcript, {"task": "structure"})
        except Exception as exc:
            logger.warning("Structure analysis failed (%s): %s", type(exc).__name__, exc)
            failures.append(exc)
            return StructureAnalysis(
                score=50,
                has_introduction=False,
                has_conclusion=False,
                logical_flow=NEUTRAL,
                cohesiveness=NEUTRAL,
                insights=["Error occurred during structure analysis."],
            )

        return StructureAnalysis(
            score=_sub_score(insight.scores, "score"),
            has_introduction=bool(insight.payload.get("hasIntroduction", False)),
            has_conclusion=bool(insight.payload.get("hasConclusion", False)),
            logical_flow=_sub_score(insight.scores, "logicalFlow"),
            cohesiveness=_sub_score(insight.scores, "cohesiveness"),
            insights=insight.insights,
        )

    async def _confidence(self, speech: SpeechInput, wpm: float, failures: list[Exception]) -> ConfidenceAnalysis:
        try:
            insight = await self.provider.score(
                speech.transcript, {"task": "confidence", "wpm": wpm}
            )
        except Exception as exc:
            logger.warning("Confidence analysis failed (%s): %s", type(exc).__name__, exc)
            failures.append(exc)
            return ConfidenceAnalysis(
                score=50,
                voice_modulation=NEUTRAL,
                pacing=NEUTRAL,
                presence=NEUTRAL,
                recovery=NEUTRAL,
                insights=["Error occurred during confidence analysis."],
            )

        return ConfidenceAnalysis(
            score=_sub_score(insight.scores, "score"),
            voice_modulation=_sub_score(insight.scores, "voiceModulation"),
            pacing=_sub_score(insight.scores, "pacing"),
            presence=_sub_score(insight.scores, "presence"),
            recovery=_sub_score(insight.scores, "recovery"),
            insights=insight.insights,
        )

    async def _body_language(self, pose: PoseSummary | None) -> BodyLanguageAnalysis:
        try:
            return body_language_from_pose(pose)
        except Exception:
            logger.exception("Body language analysis failed")
            return BodyLanguageAnalysis(
                score=50,
                posture=50,
                gestures=50,
                facial_expressions=50,
                eye_contact=50,
                movement=50,
                stability=50,
                insights=["Error occurred during body language analysis."],
            )

    async def _summary(
        self,
        language: LanguageAnalysis,
        structure: StructureAnalysis,
        confidence: ConfidenceAnalysis,
        body_language: BodyLanguageAnalysis,
        content_score: int,
    ) -> tuple[str, list[str]]:
        analysis = {
            "contentScore": content_score,
            "grammarScore": language.score,
            "structureScore": structure.score,
            "confidenceScore": confidence.score,
            "bodyLanguageScore": body_language.score,
            "fillerWordRate": language.filler_words.rate,
            "hasIntroAndConclusion": structure.has_introduction and structure.has_conclusion,
            "grammarInsights": language.advanced_insights,
            "structureInsights": structure.insights,
            "confidenceInsights": confidence.insights,
            "bodyLanguageInsights": body_language.insights,
            "suggestions": language.suggestions,
        }
        try:
            insight = await self.provider.score("", {"task": "summary", "analysis": analysis})
        except Exception as exc:
            logger.warning("Summary generation failed (%s): %s", type(exc).__name__, exc)
            return SUMMARY_FALLBACK, list(SUMMARY_FALLBACK_ACTIONS)

        summary = str(insight.payload.get("summary") or "").strip() or SUMMARY_FALLBACK
        raw_items = insight.payload.get("actionItems")
        items = [str(i) for i in raw_items if str(i).strip()] if isinstance(raw_items, list) else []
        return summary, (items or list(SUMMARY_FALLBACK_ACTIONS))[:MAX_ACTION_ITEMS]

    async def analyze(self, speech: SpeechInput) -> CompositeAnalysis:
        stats = extract_stats(speech.transcript, speech.duration)
        wpm = stats.words_per_minute
        failures: list[Exception] = []
        # structure and confidence always call out; language only past the word floor
        provider_calls = 2 + (1 if stats.word_count > MIN_WORDS_FOR_AI else 0)

        language, structure, confidence, body_language = await asyncio.gather(
            analyze_language(speech.transcript, self.provider, failures),
            self._structure(speech.transcript, failures),
            self._confidence(speech, wpm, failures),
            self._body_language(speech.pose),
        )

        for exc in failures:
            if isinstance(exc, ProviderQuotaError):
                raise exc

        if len(failures) >= provider_calls:
            raise ProviderTransientError(
                f"All {provider_calls} provider calls failed; last error: {failures[-1]}",
                provider=self.name,
            )

        content_score = compose_content(language.score, structure.score)
        summary, action_items = await self._summary(
            language, structure, confidence, body_language, content_score
        )

        return CompositeAnalysis(
            speech_content=SpeechContent(
                score=content_score,
                grammar_and_language=language,
                structure=structure,
                insights=(language.advanced_insights + structure.insights)[:MAX_CONTENT_INSIGHTS],
            ),
            body_language=body_language,
            confidence=confidence,
            overall_score=compose_overall(content_score, body_language.score, confidence.score),
            summary=summary,
            top_action_items=action_items,
        )


class SingleShotAnalyzer:
    """Provider-backed analysis in one whole-analysis call, sanitized."""

    def __init__(self, provider: InsightProvider) -> None:
        self.provider = provider

    @property
    def name(self) -> str:
        return self.provider.name

    async def analyze(self, speech: SpeechInput) -> CompositeAnalysis:
        stats = extract_stats(speech.transcript, speech.duration)
        hints = {
            "task": "full",
            "duration": speech.duration,
            "wpm": stats.words_per_minute,
            "pose": speech.pose.model_dump() if speech.pose else None,
        }
        insight = await self.provider.score(speech.transcript, hints)
        return sanitize_analysis(insight.payload)
