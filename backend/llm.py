from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

import google.generativeai as genai
import ollama
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

import config
from errors import (
    ProviderError,
    ProviderQuotaError,
    ProviderTimeoutError,
    ProviderTransientError,
)

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_WORDS = 2000  # truncate to keep provider latency bounded

_JSON_ONLY = """
Respond with the JSON object ONLY. No markdown code fences. No explanation before or after."""

LANGUAGE_PROMPT = """You are a professional speech and communication analyst. Evaluate the provided speech transcript for:
1. Coherence (1-100): how well the ideas connect and flow logically
2. Engagement (1-100): how engaging and interesting the content is
3. Readability (1-100): how easy the language is to understand
4. 2-4 specific, detailed insights about the speech's language patterns

Return a JSON object with this exact shape:
{"coherence": <number>, "engagement": <number>, "readability": <number>, "insights": ["<insight>", ...]}

Make your analysis as authentic as a real human speech coach would.""" + _JSON_ONLY

STRUCTURE_PROMPT = """You are a professional speech structure analyzer. Evaluate the provided speech transcript for:
1. Introduction presence and quality (clear opening, introduces the topic)
2. Conclusion presence and quality (summarizes main points, provides closure)
3. Logical flow (1-100): how well ideas connect and progress
4. Cohesiveness (1-100): how well the speech keeps a unified theme
5. Overall structure score (1-100)
6. 2-3 specific insights about the speech's organization

Return a JSON object with this exact shape:
{"hasIntroduction": <true|false>, "hasConclusion": <true|false>, "logicalFlow": <number>,
 "cohesiveness": <number>, "score": <number>, "insights": ["<insight>", ...]}""" + _JSON_ONLY

CONFIDENCE_PROMPT = """You are a professional confidence and delivery analyzer. Evaluate the provided speech transcript for:
1. Voice modulation indicators (1-100): variety in tone, emphasis words, punctuation indicating tone shifts
2. Pacing quality (1-100): based on the measured pace of {wpm} words per minute and the phrasing
3. Presence/authority cues (1-100): assertive language, decisive statements, minimal hedging
4. Recovery skill (1-100): graceful handling of stumbles or mistakes
5. Overall confidence score (1-100)
6. 2-3 specific coaching insights about the speaker's confidence

Return a JSON object with this exact shape:
{{"voiceModulation": <number>, "pacing": <number>, "presence": <number>, "recovery": <number>,
 "score": <number>, "insights": ["<insight>", ...]}}

Make your analysis genuine, like a real human speech coach.""" + _JSON_ONLY

SUMMARY_PROMPT = """You are a professional speech coach providing personalized feedback. Based on the analysis data provided, create:
1. A 2-3 sentence personalized summary that highlights key strengths and areas for improvement
2. A prioritized list of 3-5 specific, actionable items for improvement

Avoid generic platitudes and focus on what will make the biggest difference.

Return a JSON object with this exact shape:
{"summary": "<summary>", "actionItems": ["<item>", ...]}""" + _JSON_ONLY

FULL_PROMPT = """You are an expert speech coach analyzing a public speaking performance.
The transcript is {word_count} words long and was delivered at {wpm} words per minute.
{pose_note}
Return a JSON object with this exact shape:
{{
  "speechContent": {{
    "score": <number 0-100>,
    "grammarAndLanguage": {{
      "score": <number 0-100>,
      "fillerWords": {{"count": <number>, "rate": <fraction of words>}},
      "vocabularyRichness": <number 0-100>,
      "readabilityScore": <number 0-100>,
      "sentenceStructure": {{"averageLength": <number>, "varietyScore": <number 0-100>}}
    }},
    "structure": {{
      "score": <number 0-100>, "hasIntroduction": <bool>, "hasConclusion": <bool>,
      "logicalFlow": <number 0-100>, "cohesiveness": <number 0-100>
    }},
    "insights": ["<insight>", ...]
  }},
  "bodyLanguage": {{
    "score": <number 0-100>, "posture": <number 0-100>, "gestures": <number 0-100>,
    "movement": <number 0-100>, "facialExpressions": <number 0-100>, "eyeContact": <number 0-100>,
    "insights": ["<insight>", ...]
  }},
  "confidence": {{
    "score": <number 0-100>, "voiceModulation": <number 0-100>, "pacing": <number 0-100>,
    "presence": <number 0-100>, "recovery": <number 0-100>, "insights": ["<insight>", ...]
  }},
  "overallScore": <number 0-100>,
  "summary": "<2-3 sentence summary>",
  "topActionItems": ["<item>", "<item>", "<item>"]
}}
Ensure all scores are realistic and match the quality of the speech.""" + _JSON_ONLY

TASK_PROMPTS = {
    "language": LANGUAGE_PROMPT,
    "structure": STRUCTURE_PROMPT,
    "confidence": CONFIDENCE_PROMPT,
    "summary": SUMMARY_PROMPT,
    "full": FULL_PROMPT,
}

TASK_TEMPERATURES = {
    "language": 0.5,
    "structure": 0.3,
    "confidence": 0.4,
    "summary": 0.7,
    "full": 0.4,
}

TASK_REQUIRED_KEYS = {
    "language": {"coherence", "engagement", "readability"},
    "structure": {"score"},
    "confidence": {"score"},
    "summary": {"summary"},
    "full": set(),
}

TASK_SCORE_KEYS = {
    "language": ("coherence", "engagement", "readability"),
    "structure": ("score", "logicalFlow", "cohesiveness"),
    "confidence": ("score", "voiceModulation", "pacing", "presence", "recovery"),
    "summary": (),
    "full": ("overallScore",),
}

QUOTA_MARKERS = (
    "insufficient_quota",
    "quota",
    "rate limit",
    "rate_limit",
    "resource_exhausted",
    "resource exhausted",
    "too many requests",
)


class ProviderInsight(BaseModel):
    scores: dict[str, float] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)


def _strip_and_parse(raw: str) -> dict | None:
    """Strip <think> blocks and markdown fences, then parse the first JSON object."""
    text = re.sub(r"<think>.*?</think>", "", raw, flags=re.DOTALL).strip()

    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.MULTILINE)
    text = re.sub(r"```\s*$", "", text, flags=re.MULTILINE).strip()

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        text = match.group(0)

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _extract_scores(data: dict, keys: tuple[str, ...]) -> dict[str, float]:
    return {key: float(data[key]) for key in keys if _is_number(data.get(key))}


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item).strip()]


def truncate_transcript(transcript: str, limit: int = MAX_TRANSCRIPT_WORDS) -> str:
    words = transcript.split()
    if len(words) <= limit:
        return transcript
    return " ".join(words[:limit]) + f" [...transcript truncated at {limit} words]"


def is_quota_error(exc: BaseException) -> bool:
    """Recognize rate-limit / quota failures across the provider SDKs."""
    for attr in ("status_code", "code", "status"):
        value = getattr(exc, attr, None)
        if value is None:
            continue
        if _is_number(value) and int(value) == 429:
            return True
        if isinstance(value, str) and (
            value == "429" or any(marker in value.lower() for marker in QUOTA_MARKERS)
        ):
            return True

    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error") if isinstance(body.get("error"), dict) else body
        code = str(error.get("code") or error.get("type") or "").lower()
        if any(marker in code for marker in QUOTA_MARKERS):
            return True

    message = str(exc).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


def classify_provider_error(exc: BaseException, provider: str) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    if is_quota_error(exc):
        return ProviderQuotaError(f"{provider} quota exhausted: {exc}", provider=provider)
    return ProviderTransientError(f"{provider} request failed: {exc}", provider=provider)


def render_system_prompt(task: str, transcript: str, hints: dict[str, Any]) -> str:
    template = TASK_PROMPTS[task]
    if task == "confidence":
        return template.format(wpm=round(float(hints.get("wpm", 0) or 0)))
    if task == "full":
        pose = hints.get("pose")
        pose_note = "Body language data from pose detection is also available." if pose else ""
        return template.format(
            word_count=len(transcript.split()),
            wpm=round(float(hints.get("wpm", 0) or 0)),
            pose_note=pose_note,
        )
    return template


def render_user_prompt(task: str, transcript: str, hints: dict[str, Any]) -> str:
    if task == "summary":
        return json.dumps(hints.get("analysis", {}), default=str)

    text = truncate_transcript(transcript)
    if task != "full":
        return text

    lines = [
        f'SPEECH TRANSCRIPT:\n"{text}"',
        f"SPEECH DURATION: {hints.get('duration', 0)} seconds",
        f"PACE: {round(float(hints.get('wpm', 0) or 0))} words per minute",
    ]
    pose = hints.get("pose")
    if pose:
        lines.append(
            "Body language metrics from video analysis:\n"
            f"- Posture score: {pose.get('posture', 'N/A')}/100\n"
            f"- Gesture score: {pose.get('gestures', 'N/A')}/100\n"
            f"- Movement score: {pose.get('movement', 'N/A')}/100\n"
            f"- Stability score: {pose.get('stability', 'N/A')}/100"
        )
    lines.append(
        "Analyze this speech comprehensively, focusing on content quality, structure, "
        "grammar, delivery, and body language."
    )
    return "\n\n".join(lines)


class InsightProvider(ABC):
    """
    An external language model that scores a transcript.

    Subclasses only implement `_complete`; the base class owns prompt
    selection, the timeout, JSON extraction and error classification, so every
    adapter fails with either ProviderQuotaError or ProviderTransientError.
    """

    name = "provider"

    def __init__(self, timeout: float = config.PROVIDER_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    @abstractmethod
    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        ...

    async def score(self, transcript: str, hints: dict[str, Any] | None = None) -> ProviderInsight:
        hints = dict(hints or {})
        task = hints.get("task", "language")
        if task not in TASK_PROMPTS:
            raise ValueError(f"Unknown provider task: {task}")

        system_prompt = render_system_prompt(task, transcript, hints)
        user_prompt = render_user_prompt(task, transcript, hints)

        try:
            raw = await asyncio.wait_for(
                self._complete(system_prompt, user_prompt, TASK_TEMPERATURES[task]),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                f"{self.name} timed out after {self.timeout}s", provider=self.name
            ) from exc
        except Exception as exc:
            raise classify_provider_error(exc, self.name) from exc

        data = _strip_and_parse(raw or "")
        if data is None:
            raise ProviderTransientError(f"{self.name} returned invalid JSON", provider=self.name)

        missing = TASK_REQUIRED_KEYS[task] - data.keys()
        if missing:
            logger.warning("%s response for task %s missing keys: %s", self.name, task, missing)
            raise ProviderTransientError(
                f"{self.name} response missing keys: {sorted(missing)}", provider=self.name
            )

        return ProviderInsight(
            scores=_extract_scores(data, TASK_SCORE_KEYS[task]),
            insights=_as_str_list(data.get("insights")),
            payload=data,
        )


class OpenAIInsightProvider(InsightProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = config.OPENAI_MODEL,
        client: Any = None,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout)
        # the SDK's own retries would hide quota errors from the fallback chain
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0)
        self.model = model

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


class GeminiInsightProvider(InsightProvider):
    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = config.GEMINI_MODEL,
        client: Any = None,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout)
        if client is None:
            genai.configure(api_key=api_key)
            client = genai.GenerativeModel(model)
        self.model = client

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        response = await self.model.generate_content_async(
            [system_prompt, user_prompt],
            generation_config={"temperature": temperature},
        )
        return response.text


class OllamaInsightProvider(InsightProvider):
    name = "ollama"

    def __init__(
        self,
        host: str = config.OLLAMA_HOST,
        model: str = config.OLLAMA_MODEL,
        client: Any = None,
        timeout: float = config.PROVIDER_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(timeout)
        self.client = client or ollama.AsyncClient(host=host)
        self.model = model

    async def _complete(self, system_prompt: str, user_prompt: str, temperature: float) -> str:
        response = await self.client.chat(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            format="json",
            options={"temperature": temperature},
            think=False,
        )
        return response["message"]["content"]


def build_provider(name: str | None) -> InsightProvider | None:
    """Construct a configured provider by name, or None if it cannot be used."""
    name = (name or "").strip().lower()
    if name in ("", "none"):
        return None
    if name == "openai":
        if not config.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY is not set; openai provider disabled")
            return None
        return OpenAIInsightProvider(api_key=config.OPENAI_API_KEY)
    if name == "gemini":
        if not config.GEMINI_API_KEY:
            logger.warning("GEMINI_API_KEY is not set; gemini provider disabled")
            return None
        return GeminiInsightProvider(api_key=config.GEMINI_API_KEY)
    if name == "ollama":
        return OllamaInsightProvider()
    logger.warning("Unknown provider %r; ignoring", name)
    return None
