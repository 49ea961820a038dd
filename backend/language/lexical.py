from __future__ import annotations

import re
from dataclasses import dataclass, field

MTLD_FACTOR = 0.72
MTLD_MIN_TOKENS = 10

_SENTENCE_BOUNDARY = re.compile(r"([.?!])\s*(?=[A-Z])")
_NON_WORD = re.compile(r"[^\w\s']|_")


def tokenize(text: str) -> list[str]:
    """Split text into words, dropping punctuation but keeping apostrophes."""
    return _NON_WORD.sub(" ", text or "").split()


def split_sentences(text: str) -> list[str]:
    """
    Split on terminal punctuation that is followed by an upper-case letter.

    Lower-case continuations ("e.g. this", "3.5 points") stay in one sentence.
    """
    marked = _SENTENCE_BOUNDARY.sub(r"\1|", (text or "").strip())
    return [part.strip() for part in marked.split("|") if part.strip()]


def lexical_diversity(words: list[str]) -> float:
    """
    MTLD-style segmented type/token ratio, normalized to 0-1.

    A segment closes whenever the running type/token ratio drops to
    MTLD_FACTOR; the trailing partial segment gets fractional credit.
    Short inputs fall back to the plain type/token ratio.
    """
    if len(words) < MTLD_MIN_TOKENS:
        if not words:
            return 0.0
        return len({w.lower() for w in words}) / len(words)

    segments = 0.0
    ttr = 1.0
    types: set[str] = set()
    tokens = 0

    for word in words:
        types.add(word.lower())
        tokens += 1
        ttr = len(types) / tokens
        if ttr <= MTLD_FACTOR:
            segments += 1
            types = set()
            tokens = 0

    if tokens > 0:
        segments += (1 - ttr) / (1 - MTLD_FACTOR)

    mtld = len(words) / max(1.0, segments)
    return min(mtld / 100, 1.0)


@dataclass(frozen=True)
class TranscriptStats:
    text: str
    duration_seconds: float
    words: list[str] = field(default_factory=list)
    sentences: list[str] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.words)

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)

    @property
    def unique_word_count(self) -> int:
        return len({w.lower() for w in self.words})

    @property
    def words_per_minute(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.word_count / (self.duration_seconds / 60)

    @property
    def is_empty(self) -> bool:
        return self.word_count == 0


def extract_stats(transcript: str, duration_seconds: float = 0.0) -> TranscriptStats:
    text = (transcript or "").strip()
    if not text:
        return TranscriptStats(text="", duration_seconds=duration_seconds)
    return TranscriptStats(
        text=text,
        duration_seconds=duration_seconds,
        words=tokenize(text),
        sentences=split_sentences(text),
    )


def sentence_lengths(sentences: list[str]) -> list[int]:
    return [len(tokenize(sentence)) for sentence in sentences]
