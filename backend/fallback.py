from __future__ import annotations

import logging

from delivery import classify_pace
from feedback import build_action_items, compose_content, compose_overall, templated_summary
from language.lexical import extract_stats, lexical_diversity
from language.patterns import detect_fillers, detect_low_content_phrases, detect_transitions
from language.scoring import filler_score, transition_score
from language.structure import analyze_structure
from non_verbal.pose import body_language_from_pose
from schemas import (
    CompositeAnalysis,
    ConfidenceAnalysis,
    LanguageAnalysis,
    SpeechContent,
    SpeechInput,
    StructureAnalysis,
)

logger = logging.getLogger(__name__)

BASE_SPEECH_SCORE = 70
NEUTRAL = 50


def _clamp(value: float) -> int:
    return int(max(0, min(100, round(value))))


def speech_score(word_count: int, wpm: float, filler_count: int, average_length: float) -> int:
    score = BASE_SPEECH_SCORE
    if word_count < 20:
        score -= 10
    if wpm < 100:
        score -= 5
    elif wpm > 180:
        score -= 10
    else:
        score += 5
    score -= 2 * filler_count
    score += 5 if 5 < average_length < 20 else -5
    return _clamp(score)


def local_suggestions(
    word_count: int, wpm: float, filler_count: int, average_length: float, sentence_count: int
) -> list[str]:
    suggestions: list[str] = []
    if wpm > 180:
        suggestions.append("Try speaking a bit slower for better clarity.")
    if wpm < 100:
        suggestions.append("Consider picking up the pace a little to maintain audience interest.")
    if filler_count > 5:
        suggestions.append(f"Watch out for filler words. You used them {filler_count} times.")
    if average_length > 20:
        suggestions.append("Consider using shorter sentences for better clarity.")
    if average_length < 5 and sentence_count > 3:
        suggestions.append("Try using more complex sentence structures to sound more natural.")
    if word_count < 50:
        suggestions.append("Your speech was quite short. Consider elaborating more on your points.")
    return suggestions[:5]


def _structure_insights(score: int) -> list[str]:
    if score >= 70:
        return ["Your sentence rhythm and variety keep the speech moving."]
    if score >= 50:
        return ["Mix short and long sentences to give your speech more rhythm."]
    return ["Your sentences are uniform; vary their length and use connecting phrases."]


def _confidence_insights(pace: int, fillers: float) -> list[str]:
    insights: list[str] = []
    if pace >= 90:
        insights.append("Your speaking pace is in a comfortable range for listeners.")
    elif pace == 70:
        insights.append("You speak quickly; slowing down will make you sound more assured.")
    else:
        insights.append("You speak slowly; a slightly faster pace will sound more confident.")
    if fillers < 80:
        insights.append("Frequent filler words undercut an otherwise confident delivery.")
    return insights


class DeterministicAnalyzer:
    """
    Local scoring with no provider calls.

    Uses the same filler, structure and pace heuristics as the rest of the
    pipeline with fixed weights and templated feedback. Pure computation,
    so it is the last stop of the fallback chain.
    """

    def analyze(self, speech: SpeechInput) -> CompositeAnalysis:
        stats = extract_stats(speech.transcript, speech.duration)
        wpm = stats.words_per_minute
        fillers = detect_fillers(stats.text, stats.word_count)
        transitions = detect_transitions(stats.text, stats.sentence_count)
        sentences = analyze_structure(stats.sentences)

        language_score = speech_score(
            stats.word_count, wpm, fillers.count, sentences.average_length
        )
        language = LanguageAnalysis(
            score=language_score,
            filler_words=fillers,
            transition_words=transitions,
            sentence_structure=sentences,
            low_content_phrases=detect_low_content_phrases(stats.text),
            vocabulary_richness=lexical_diversity(stats.words),
            readability_score=NEUTRAL,
            engagement=NEUTRAL,
            coherence=NEUTRAL,
            suggestions=local_suggestions(
                stats.word_count, wpm, fillers.count, sentences.average_length,
                stats.sentence_count,
            ),
        )

        structure_score = _clamp(
            0.4 * sentences.pacing_score
            + 0.3 * sentences.variety_score
            + 0.3 * sentences.complexity_score
        )
        structure = StructureAnalysis(
            score=structure_score,
            logical_flow=round(sentences.pacing_score),
            cohesiveness=round(transition_score(transitions.count, stats.sentence_count)),
            insights=_structure_insights(structure_score),
        )

        pace = classify_pace(wpm)
        filler_component = filler_score(fillers.rate)
        confidence = ConfidenceAnalysis(
            score=_clamp(0.6 * pace + 0.4 * filler_component),
            voice_modulation=NEUTRAL,
            pacing=pace,
            presence=round(filler_component),
            recovery=NEUTRAL,
            insights=_confidence_insights(pace, filler_component),
        )

        body_language = body_language_from_pose(speech.pose)
        content_score = compose_content(language.score, structure.score)
        overall = compose_overall(content_score, body_language.score, confidence.score)

        logger.info(
            "Deterministic analysis: %d words, content %d, overall %d",
            stats.word_count, content_score, overall,
        )

        return CompositeAnalysis(
            speech_content=SpeechContent(
                score=content_score,
                grammar_and_language=language,
                structure=structure,
                insights=(language.suggestions + structure.insights)[:5],
            ),
            body_language=body_language,
            confidence=confidence,
            overall_score=overall,
            summary=templated_summary(content_score, body_language.score, confidence.score),
            top_action_items=build_action_items(
                stats.word_count,
                wpm,
                fillers.count,
                fillers.instances,
                posture=speech.pose.posture if speech.pose else None,
                gestures=speech.pose.gestures if speech.pose else None,
            ),
        )
