from __future__ import annotations

import logging
from typing import Any

from language.scoring import NO_SPEECH_MESSAGE, empty_language_analysis
from schemas import (
    BodyLanguageAnalysis,
    CompositeAnalysis,
    ConfidenceAnalysis,
    FillerWords,
    LanguageAnalysis,
    SentenceStructure,
    SpeechContent,
    StructureAnalysis,
)

logger = logging.getLogger(__name__)

MAX_ACTION_ITEMS = 5
SANITIZE_DEFAULT = 70

CONTENT_WEIGHTS = {"language": 0.6, "structure": 0.4}
OVERALL_WEIGHTS = {"content": 0.4, "body_language": 0.4, "confidence": 0.2}

ERROR_INSIGHT = "Analysis error occurred."
ERROR_SUMMARY = "An error occurred during speech analysis. Please try again."

SUMMARY_FALLBACK = (
    "Analysis complete. Review the detailed feedback to identify areas for improvement."
)
SUMMARY_FALLBACK_ACTIONS = [
    "Review your grammar and language usage.",
    "Work on speech structure and organization.",
    "Practice to improve confidence and delivery.",
    "Consider body language and non-verbal communication.",
]
GENERIC_ACTION_ITEMS = [
    "Practice regularly to build confidence and fluency",
    "Record yourself to observe and improve body language",
    "Prepare structured content with clear introduction and conclusion",
]
CLOSING_ACTION_ITEM = "Keep practicing regularly to build confidence and fluency."

# (minimum score, sentence) checked top-down; the last entry is the floor.
CONTENT_TEMPLATES = [
    (80, "Your speech content is strong, with clear language and a well-organized structure."),
    (60, "Your speech content is solid, though tighter language and clearer organization would sharpen it."),
    (0, "Your speech content needs work on language and organization."),
]
BODY_TEMPLATES = [
    (80, "Your body language supports your message with good posture and natural gestures."),
    (60, "Your body language is generally effective, with some room to improve posture and gestures."),
    (0, "Your body language could better support your message through posture and purposeful gestures."),
]
CONFIDENCE_TEMPLATES = [
    (80, "You come across as confident and well paced."),
    (60, "You show reasonable confidence; steadier pacing and fewer fillers would strengthen your delivery."),
    (0, "Building confidence through pacing practice and fewer fillers will make a big difference."),
]


def clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


def compose_content(language_score: float, structure_score: float) -> int:
    return clamp_score(
        language_score * CONTENT_WEIGHTS["language"]
        + structure_score * CONTENT_WEIGHTS["structure"]
    )


def compose_overall(content: float, body_language: float, confidence: float) -> int:
    return clamp_score(
        content * OVERALL_WEIGHTS["content"]
        + body_language * OVERALL_WEIGHTS["body_language"]
        + confidence * OVERALL_WEIGHTS["confidence"]
    )


def _pick(templates: list[tuple[int, str]], score: int) -> str:
    for minimum, sentence in templates:
        if score >= minimum:
            return sentence
    return templates[-1][1]


def templated_summary(content: int, body_language: int, confidence: int) -> str:
    return " ".join([
        _pick(CONTENT_TEMPLATES, content),
        _pick(BODY_TEMPLATES, body_language),
        _pick(CONFIDENCE_TEMPLATES, confidence),
    ])


def build_action_items(
    word_count: int,
    wpm: float,
    filler_count: int,
    filler_examples: list[str] | None = None,
    posture: int | None = None,
    gestures: int | None = None,
) -> list[str]:
    """
    Prioritized action items, capped at MAX_ACTION_ITEMS.

    Order: short transcript, pacing, fillers, posture, gestures, then a
    generic closing item if there is room. Posture and gesture advice is
    only given when those were measured.
    """
    items: list[str] = []

    if word_count < 50:
        items.append("Your speech was quite short. Consider elaborating more on your points.")

    if wpm > 180:
        items.append("Try speaking a bit slower for better clarity.")
    elif 0 < wpm < 100:
        items.append("Consider picking up the pace a little to maintain audience interest.")

    if filler_count > 5:
        examples = '", "'.join((filler_examples or ["um", "uh"])[:3])
        items.append(
            f'Watch out for filler words like "{examples}". You used them {filler_count} times.'
        )

    if posture is not None and posture < 60:
        items.append("Keep your shoulders level and stand tall to project confidence.")

    if gestures is not None and gestures < 60:
        items.append("Use purposeful hand gestures to reinforce your key points.")

    if len(items) < MAX_ACTION_ITEMS:
        items.append(CLOSING_ACTION_ITEM)

    return items[:MAX_ACTION_ITEMS]


def empty_analysis() -> CompositeAnalysis:
    """The result for a transcript with no words in it."""
    return CompositeAnalysis(
        speech_content=SpeechContent(
            score=0,
            grammar_and_language=empty_language_analysis(),
            structure=StructureAnalysis(insights=["No speech content to analyze."]),
            insights=[NO_SPEECH_MESSAGE],
        ),
        body_language=BodyLanguageAnalysis(insights=["No body language data to analyze."]),
        confidence=ConfidenceAnalysis(insights=["No confidence data to analyze."]),
        overall_score=0,
        summary="No speech detected for analysis.",
        top_action_items=["Record a speech to receive analysis and feedback."],
    )


def error_analysis(message: str = ERROR_SUMMARY) -> CompositeAnalysis:
    return CompositeAnalysis(
        speech_content=SpeechContent(
            grammar_and_language=LanguageAnalysis(suggestions=[ERROR_INSIGHT]),
            structure=StructureAnalysis(insights=[ERROR_INSIGHT]),
            insights=[ERROR_INSIGHT],
        ),
        body_language=BodyLanguageAnalysis(insights=[ERROR_INSIGHT]),
        confidence=ConfidenceAnalysis(insights=[ERROR_INSIGHT]),
        overall_score=0,
        summary=message,
        top_action_items=["Try recording your speech again."],
    )


# Provider response sanitization

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_score(section: dict, key: str = "score") -> bool:
    return _is_number(section.get(key))


def _score_field(section: dict, key: str, default: int = SANITIZE_DEFAULT) -> int:
    value = section.get(key)
    if _is_number(value):
        return clamp_score(value)
    return default


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _section(data: dict, key: str, missing_insight: str) -> dict:
    section = data.get(key)
    if isinstance(section, dict):
        return section
    logger.warning("Provider analysis missing %s; using defaults", key)
    return {"score": SANITIZE_DEFAULT, "insights": [missing_insight]}


def _sanitize_language(grammar: dict) -> LanguageAnalysis:
    fillers = _dict(grammar.get("fillerWords"))
    sentences = _dict(grammar.get("sentenceStructure"))
    vocabulary = grammar.get("vocabularyRichness")
    richness = 0.0
    if _is_number(vocabulary):
        # accept either a 0-1 fraction or a 0-100 score
        richness = vocabulary / 100 if vocabulary > 1 else vocabulary
    filler_count = fillers.get("count")
    filler_rate = fillers.get("rate")
    average_length = sentences.get("averageLength")

    return LanguageAnalysis(
        score=_score_field(grammar, "score"),
        filler_words=FillerWords(
            count=int(filler_count) if _is_number(filler_count) and filler_count > 0 else 0,
            rate=float(filler_rate) if _is_number(filler_rate) and filler_rate > 0 else 0.0,
        ),
        sentence_structure=SentenceStructure(
            average_length=float(average_length) if _is_number(average_length) else 0.0,
            variety_score=_score_field(sentences, "varietyScore"),
        ),
        vocabulary_richness=max(0.0, min(1.0, richness)),
        readability_score=_score_field(grammar, "readabilityScore"),
        engagement=_score_field(grammar, "engagement"),
        coherence=_score_field(grammar, "coherence"),
        suggestions=_strings(grammar.get("suggestions"))[:5],
        advanced_insights=_strings(grammar.get("insights")),
    )


def sanitize_analysis(data: dict[str, Any]) -> CompositeAnalysis:
    """
    Normalize a whole-analysis provider response.

    Missing sections and score fields become 70, every score is clamped to
    0-100, Content is recomputed when both grammar and structure scores are
    present, Overall is always recomputed, and an empty action-item list is
    replaced with generic items.
    """
    speech = _section(data, "speechContent", "Analysis generated with limited data")
    body = _section(data, "bodyLanguage", "Body language analysis limited by available data")
    confidence = _section(data, "confidence", "Confidence assessment based on limited signals")

    grammar_raw = _dict(speech.get("grammarAndLanguage"))
    structure_raw = _dict(speech.get("structure"))
    grammar = _sanitize_language(grammar_raw)
    structure = StructureAnalysis(
        score=_score_field(structure_raw, "score"),
        has_introduction=bool(structure_raw.get("hasIntroduction", False)),
        has_conclusion=bool(structure_raw.get("hasConclusion", False)),
        logical_flow=_score_field(structure_raw, "logicalFlow"),
        cohesiveness=_score_field(structure_raw, "cohesiveness"),
        insights=_strings(structure_raw.get("insights")),
    )

    if _has_score(grammar_raw) and _has_score(structure_raw):
        content_score = compose_content(grammar.score, structure.score)
    else:
        content_score = _score_field(speech, "score")

    body_language = BodyLanguageAnalysis(
        score=_score_field(body, "score"),
        posture=_score_field(body, "posture"),
        gestures=_score_field(body, "gestures"),
        facial_expressions=_score_field(body, "facialExpressions"),
        eye_contact=_score_field(body, "eyeContact"),
        movement=_score_field(body, "movement"),
        stability=_score_field(body, "stability"),
        insights=_strings(body.get("insights")),
    )
    confidence_analysis = ConfidenceAnalysis(
        score=_score_field(confidence, "score"),
        voice_modulation=_score_field(confidence, "voiceModulation"),
        pacing=_score_field(confidence, "pacing"),
        presence=_score_field(confidence, "presence"),
        recovery=_score_field(confidence, "recovery"),
        insights=_strings(confidence.get("insights")),
    )

    overall = compose_overall(content_score, body_language.score, confidence_analysis.score)

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = templated_summary(content_score, body_language.score, confidence_analysis.score)

    action_items = _strings(data.get("topActionItems")) or list(GENERIC_ACTION_ITEMS)

    return CompositeAnalysis(
        speech_content=SpeechContent(
            score=content_score,
            grammar_and_language=grammar,
            structure=structure,
            insights=_strings(speech.get("insights")),
        ),
        body_language=body_language,
        confidence=confidence_analysis,
        overall_score=overall,
        summary=summary.strip(),
        top_action_items=action_items[:MAX_ACTION_ITEMS],
    )
