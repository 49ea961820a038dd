from __future__ import annotations

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from supabase import create_client

import config
from errors import PersistenceError
from language.lexical import extract_stats
from schemas import CompositeAnalysis, SessionScores, SpeechSession, SpeechSessionCreate

logger = logging.getLogger(__name__)


def session_from_analysis(
    title: str, transcript: str, duration: float, analysis: CompositeAnalysis
) -> SpeechSessionCreate:
    stats = extract_stats(transcript, duration)
    language = analysis.speech_content.grammar_and_language
    return SpeechSessionCreate(
        title=title,
        transcript=transcript,
        duration=duration,
        scores=SessionScores(
            speech=analysis.speech_content.score,
            body_language=analysis.body_language.score,
            confidence=analysis.confidence.score,
            total=analysis.overall_score,
        ),
        feedback="\n".join([analysis.summary, *analysis.top_action_items]).strip(),
        metrics={
            "word_count": float(stats.word_count),
            "words_per_minute": round(stats.words_per_minute, 2),
            "filler_word_count": float(language.filler_words.count),
            "filler_word_rate": round(language.filler_words.rate, 4),
            "vocabulary_richness": round(language.vocabulary_richness, 4),
        },
    )


def _row(user_id: str, data: SpeechSessionCreate, analysis: CompositeAnalysis | None) -> dict[str, Any]:
    return {
        "user_id": user_id,
        "title": data.title,
        "transcript": data.transcript,
        "duration": data.duration,
        "speech_score": data.scores.speech,
        "body_language_score": data.scores.body_language,
        "confidence_score": data.scores.confidence,
        "total_score": data.scores.total,
        "feedback": data.feedback,
        "metrics": data.metrics,
        "analysis": analysis.model_dump() if analysis is not None else None,
    }


class SpeechSessionStore(ABC):
    """Completed practice sessions. Records are immutable once created."""

    @abstractmethod
    async def create(
        self,
        user_id: str,
        data: SpeechSessionCreate,
        analysis: CompositeAnalysis | None = None,
    ) -> SpeechSession:
        ...

    @abstractmethod
    async def get(self, session_id: str) -> SpeechSession | None:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[SpeechSession]:
        ...


class InMemorySessionStore(SpeechSessionStore):
    def __init__(self) -> None:
        self._sessions: dict[str, SpeechSession] = {}
        self._ids = itertools.count(1)

    async def create(self, user_id, data, analysis=None):
        session = SpeechSession(
            id=next(self._ids),
            created_at=datetime.now(timezone.utc),
            **_row(user_id, data, analysis),
        )
        self._sessions[str(session.id)] = session
        return session

    async def get(self, session_id):
        return self._sessions.get(str(session_id))

    async def list_for_user(self, user_id):
        sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: s.created_at, reverse=True)


class SupabaseSessionStore(SpeechSessionStore):
    def __init__(self, client: Any, table: str = config.SPEECH_SESSIONS_TABLE) -> None:
        self.client = client
        self.table = table

    def _insert(self, row: dict[str, Any]) -> dict[str, Any]:
        response = self.client.table(self.table).insert(row).execute()
        if not response.data:
            raise PersistenceError("Insert returned no rows.")
        return response.data[0]

    def _select_one(self, session_id: str) -> dict[str, Any] | None:
        response = self.client.table(self.table).select("*").eq("id", session_id).limit(1).execute()
        return response.data[0] if response.data else None

    def _select_for_user(self, user_id: str) -> list[dict[str, Any]]:
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return response.data or []

    async def create(self, user_id, data, analysis=None):
        try:
            record = await asyncio.to_thread(self._insert, _row(user_id, data, analysis))
            return SpeechSession.model_validate(record)
        except PersistenceError:
            raise
        except Exception as exc:
            logger.error("Failed to save speech session for user %s: %s", user_id, exc)
            raise PersistenceError(f"Failed to save speech session: {exc}") from exc

    async def get(self, session_id):
        try:
            record = await asyncio.to_thread(self._select_one, session_id)
        except Exception as exc:
            logger.error("Failed to load speech session %s: %s", session_id, exc)
            raise PersistenceError(f"Failed to load speech session: {exc}") from exc
        return SpeechSession.model_validate(record) if record else None

    async def list_for_user(self, user_id):
        try:
            records = await asyncio.to_thread(self._select_for_user, user_id)
        except Exception as exc:
            logger.error("Failed to list speech sessions for user %s: %s", user_id, exc)
            raise PersistenceError(f"Failed to list speech sessions: {exc}") from exc
        return [SpeechSession.model_validate(r) for r in records]


def build_session_store() -> SpeechSessionStore:
    if config.SUPABASE_URL and config.SUPABASE_KEY:
        return SupabaseSessionStore(create_client(config.SUPABASE_URL, config.SUPABASE_KEY))
    logger.warning("SUPABASE_URL / SUPABASE_KEY not set; speech sessions are kept in memory")
    return InMemorySessionStore()
