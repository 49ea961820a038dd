from __future__ import annotations

import re

from schemas import FillerWords, TransitionWords

FILLER_GROUPS = {
    "discourse": [
        "um", "uh", "er", "ah", "hmm", "like", "you know", "basically",
        "actually", "literally", "anyway", "so", "right", "well",
    ],
    "hedge": [
        "sort of", "kind of", "type of", "i guess", "i think", "i mean", "i suppose",
    ],
    "qualifier": [
        "just", "very", "really", "quite", "pretty", "fairly", "extremely",
        "totally", "absolutely", "definitely",
    ],
}

TRANSITION_CATEGORIES = {
    "addition": [
        "additionally", "furthermore", "moreover", "also", "besides",
        "in addition", "as well as",
    ],
    "contrast": [
        "however", "nevertheless", "although", "whereas", "despite", "instead",
        "otherwise", "unlike", "regardless",
    ],
    "cause": [
        "therefore", "consequently", "thus", "hence", "as a result", "because",
        "since", "due to",
    ],
    "sequence": [
        "first", "second", "third", "finally", "initially", "lastly", "next",
        "meanwhile", "subsequently",
    ],
    "summary": [
        "in conclusion", "to summarize", "in summary", "in short", "to conclude",
        "overall", "to sum up",
    ],
}

LOW_CONTENT_PHRASES = [
    "at the end of the day", "when all is said and done", "needless to say",
    "for what it's worth", "to be honest", "if you will",
    "if you know what i mean", "as a matter of fact",
]

MAX_INSTANCES = 10


def _phrase_regex(phrases: list[str]) -> re.Pattern[str]:
    alternatives = "|".join(r"\s+".join(map(re.escape, p.split())) for p in phrases)
    return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


_FILLER_REGEXES = [_phrase_regex(phrases) for phrases in FILLER_GROUPS.values()]
_TRANSITION_REGEXES = {
    category: {term: _phrase_regex([term]) for term in terms}
    for category, terms in TRANSITION_CATEGORIES.items()
}
_LOW_CONTENT_REGEX = _phrase_regex(LOW_CONTENT_PHRASES)


def _normalize(match: str) -> str:
    return " ".join(match.lower().split())


def _unique(items: list[str], limit: int = MAX_INSTANCES) -> list[str]:
    return list(dict.fromkeys(items))[:limit]


def detect_fillers(text: str, word_count: int) -> FillerWords:
    """
    Count filler phrase occurrences.

    A multi-word phrase ("you know") counts as one occurrence, and the rate
    is occurrences per word.
    """
    found: list[tuple[int, str]] = []
    for regex in _FILLER_REGEXES:
        found.extend((m.start(), _normalize(m.group(0))) for m in regex.finditer(text or ""))
    matches = [phrase for _, phrase in sorted(found)]

    phrases: dict[str, int] = {}
    for phrase in matches:
        phrases[phrase] = phrases.get(phrase, 0) + 1

    return FillerWords(
        count=len(matches),
        instances=_unique(matches),
        phrases=dict(sorted(phrases.items(), key=lambda item: item[1], reverse=True)),
        rate=len(matches) / word_count if word_count > 0 else 0.0,
    )


def detect_transitions(text: str, sentence_count: int) -> TransitionWords:
    instances: list[str] = []
    categories: dict[str, int] = {}

    for category, term_regexes in _TRANSITION_REGEXES.items():
        categories[category] = 0
        for regex in term_regexes.values():
            found = [_normalize(m.group(0)) for m in regex.finditer(text or "")]
            categories[category] += len(found)
            instances.extend(found)

    count = sum(categories.values())
    return TransitionWords(
        count=count,
        instances=_unique(instances),
        coverage=count / max(1, sentence_count),
        categories=categories,
    )


def detect_low_content_phrases(text: str) -> list[str]:
    return _unique([_normalize(m.group(0)) for m in _LOW_CONTENT_REGEX.finditer(text or "")])
