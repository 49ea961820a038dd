from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from language.lexical import TranscriptStats, extract_stats, lexical_diversity
from language.patterns import detect_fillers, detect_low_content_phrases, detect_transitions
from language.structure import analyze_structure
from schemas import LanguageAnalysis, SentenceStructure, TransitionWords

if TYPE_CHECKING:
    from llm import InsightProvider

logger = logging.getLogger(__name__)

NO_SPEECH_MESSAGE = "No speech detected to analyze."
AI_FAILURE_INSIGHT = "Unable to perform advanced AI analysis at this time."

MIN_WORDS_FOR_AI = 20
NEUTRAL_SCORE = 50.0
MAX_SUGGESTIONS = 5

WEIGHTS = {
    "filler": 0.15,
    "transition": 0.15,
    "complexity": 0.10,
    "variety": 0.10,
    "pacing": 0.10,
    "vocabulary": 0.10,
    "coherence": 0.15,
    "engagement": 0.10,
    "readability": 0.05,
}


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))


def filler_score(rate: float) -> float:
    return 100 - min(rate * 200, 100)


def transition_score(count: int, sentence_count: int) -> float:
    return min(count / max(1, sentence_count) * 30, 100)


def weighted_language_score(components: dict[str, float]) -> int:
    total = sum(components[key] * weight for key, weight in WEIGHTS.items())
    return int(clamp(round(total)))


def build_suggestions(
    stats: TranscriptStats,
    filler_rate: float,
    filler_instances: list[str],
    transitions: TransitionWords,
    structure: SentenceStructure,
    diversity: float,
) -> list[str]:
    """Rule-based suggestions in priority order, capped at MAX_SUGGESTIONS."""
    suggestions: list[str] = []
    sentence_count = stats.sentence_count

    if filler_rate > 0.05:
        examples = '", "'.join(filler_instances[:3])
        suggestions.append(
            f'You used filler words like "{examples}" frequently '
            f"({round(filler_rate * 100)}% of your words). "
            "Try to reduce these for more confident delivery."
        )

    if sentence_count > 3:
        if transitions.count / sentence_count < 0.15:
            suggestions.append(
                "Your speech could use more transition words to connect ideas and improve flow."
            )

        used = [c for c, n in transitions.categories.items() if n > 0]
        if len(used) < len(transitions.categories) / 2 and sentence_count > 5:
            missing = [c for c, n in transitions.categories.items() if n == 0][:2]
            suggestions.append(
                f"Try incorporating {' and '.join(missing)} transitions to better structure your speech."
            )

    if structure.average_length > 25 and sentence_count > 2:
        suggestions.append(
            "Your sentences are quite long. Consider breaking some into shorter ones for better clarity."
        )
    elif structure.average_length < 8 and sentence_count > 3:
        suggestions.append(
            "Your sentences are very short. Try combining some ideas for better flow and variety."
        )

    if structure.variety_score < 40 and sentence_count > 4:
        suggestions.append("Try varying your sentence structure more for a more engaging delivery.")

    if diversity < 0.6 and stats.word_count > 50:
        suggestions.append(
            "Consider using more diverse vocabulary to express your ideas more precisely."
        )

    return suggestions[:MAX_SUGGESTIONS]


def empty_language_analysis() -> LanguageAnalysis:
    return LanguageAnalysis(suggestions=[NO_SPEECH_MESSAGE])


async def _ai_insights(
    transcript: str,
    word_count: int,
    provider: InsightProvider | None,
    provider_failures: list[Exception] | None,
) -> tuple[float, float, float, list[str]]:
    """
    Ask the provider for coherence / engagement / readability.

    Never raises; failures are logged, optionally recorded in
    `provider_failures`, and reduced to neutral scores.
    """
    if provider is None or word_count <= MIN_WORDS_FOR_AI:
        return NEUTRAL_SCORE, NEUTRAL_SCORE, NEUTRAL_SCORE, []

    try:
        insight = await provider.score(transcript, {"task": "language"})
    except Exception as exc:
        logger.warning("Language insight call failed (%s): %s", type(exc).__name__, exc)
        if provider_failures is not None:
            provider_failures.append(exc)
        return NEUTRAL_SCORE, NEUTRAL_SCORE, NEUTRAL_SCORE, [AI_FAILURE_INSIGHT]

    scores = insight.scores
    return (
        clamp(scores.get("coherence", NEUTRAL_SCORE)),
        clamp(scores.get("engagement", NEUTRAL_SCORE)),
        clamp(scores.get("readability", NEUTRAL_SCORE)),
        insight.insights,
    )


async def analyze_language(
    transcript: str | None,
    provider: InsightProvider | None = None,
    provider_failures: list[Exception] | None = None,
) -> LanguageAnalysis:
    """
    Grammar / language composite for one transcript.

    Combines filler and transition detection, sentence structure, lexical
    diversity and (for transcripts over 20 words) provider-sourced
    coherence, engagement and readability into a weighted 0-100 score.
    """
    stats = extract_stats(transcript or "")
    if stats.is_empty:
        return empty_language_analysis()

    fillers = detect_fillers(stats.text, stats.word_count)
    transitions = detect_transitions(stats.text, stats.sentence_count)
    structure = analyze_structure(stats.sentences)
    diversity = lexical_diversity(stats.words)

    coherence, engagement, readability, insights = await _ai_insights(
        stats.text, stats.word_count, provider, provider_failures
    )

    score = weighted_language_score({
        "filler": filler_score(fillers.rate),
        "transition": transition_score(transitions.count, stats.sentence_count),
        "complexity": structure.complexity_score,
        "variety": structure.variety_score,
        "pacing": structure.pacing_score,
        "vocabulary": diversity * 100,
        "coherence": coherence,
        "engagement": engagement,
        "readability": readability,
    })

    logger.info(
        "Language analysis: %d words, %d sentences, score %d",
        stats.word_count, stats.sentence_count, score,
    )

    return LanguageAnalysis(
        score=score,
        filler_words=fillers,
        transition_words=transitions,
        sentence_structure=structure,
        low_content_phrases=detect_low_content_phrases(stats.text),
        vocabulary_richness=diversity,
        readability_score=readability,
        engagement=engagement,
        coherence=coherence,
        suggestions=build_suggestions(
            stats, fillers.rate, fillers.instances, transitions, structure, diversity
        ),
        advanced_insights=insights,
    )
