from __future__ import annotations

import math
import re

from language.lexical import sentence_lengths
from schemas import SentenceStructure

SUBORDINATORS = [
    "although", "because", "since", "unless", "while", "whereas", "if", "when",
    "before", "after", "until", "once",
]

_SUBORDINATOR_REGEX = re.compile(
    r"\b(?:" + "|".join(SUBORDINATORS) + r")\b", re.IGNORECASE
)
_PARENTHETICAL = re.compile(r"\(.*?\)")

DEFAULT_PACING = 50.0
SHORT_SENTENCE = 5
LONG_SENTENCE = 15
PUNCH_SENTENCE = 8


def sentence_complexity(sentence: str) -> int:
    return (
        2 * len(_SUBORDINATOR_REGEX.findall(sentence))
        + sentence.count(",")
        + 3 * sentence.count(";")
        + 2 * len(_PARENTHETICAL.findall(sentence))
        + 2 * sentence.count(":")
    )


def complexity_score(sentences: list[str]) -> float:
    if not sentences:
        return 0.0
    total = sum(sentence_complexity(s) for s in sentences)
    return min(total / len(sentences) * 10, 100.0)


def variety_score(lengths: list[int]) -> float:
    """Population standard deviation of sentence lengths, x5, capped at 100."""
    if len(lengths) <= 2:
        return 0.0
    mean = sum(lengths) / len(lengths)
    variance = sum((n - mean) ** 2 for n in lengths) / len(lengths)
    return min(math.sqrt(variance) * 5, 100.0)


def pacing_score(lengths: list[int]) -> float:
    """
    Reward rhetorical rhythm: a short sentence building up into a much longer
    one, or a long sentence landing on a short punch line.
    """
    if len(lengths) < 4:
        return DEFAULT_PACING

    patterns = 0
    for current, following in zip(lengths, lengths[1:]):
        if current < SHORT_SENTENCE and following > current * 2:
            patterns += 1
        if current > LONG_SENTENCE and following < PUNCH_SENTENCE:
            patterns += 1

    return min(DEFAULT_PACING + 100 * patterns / len(lengths), 100.0)


def analyze_structure(sentences: list[str]) -> SentenceStructure:
    lengths = sentence_lengths(sentences)
    average = sum(lengths) / len(lengths) if lengths else 0.0
    return SentenceStructure(
        average_length=average,
        complexity_score=complexity_score(sentences),
        variety_score=variety_score(lengths),
        pacing_score=pacing_score(lengths),
    )
