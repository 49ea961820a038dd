from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# Language analysis

class FillerWords(BaseModel):
    count: int = 0
    instances: list[str] = Field(default_factory=list)
    phrases: dict[str, int] = Field(default_factory=dict)
    rate: float = Field(default=0.0, ge=0)


class TransitionWords(BaseModel):
    count: int = 0
    instances: list[str] = Field(default_factory=list)
    coverage: float = 0.0
    categories: dict[str, int] = Field(default_factory=dict)


class SentenceStructure(BaseModel):
    average_length: float = 0.0
    complexity_score: float = 0.0
    variety_score: float = 0.0
    pacing_score: float = 0.0


class LanguageAnalysis(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    filler_words: FillerWords = Field(default_factory=FillerWords)
    transition_words: TransitionWords = Field(default_factory=TransitionWords)
    sentence_structure: SentenceStructure = Field(default_factory=SentenceStructure)
    low_content_phrases: list[str] = Field(default_factory=list)
    vocabulary_richness: float = Field(default=0.0, ge=0, le=1)
    readability_score: float = 0.0
    engagement: float = 0.0
    coherence: float = 0.0
    suggestions: list[str] = Field(default_factory=list)
    advanced_insights: list[str] = Field(default_factory=list)


# Composite analysis

class StructureAnalysis(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    has_introduction: bool = False
    has_conclusion: bool = False
    logical_flow: float = 0.0
    cohesiveness: float = 0.0
    insights: list[str] = Field(default_factory=list)


class SpeechContent(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    grammar_and_language: LanguageAnalysis = Field(default_factory=LanguageAnalysis)
    structure: StructureAnalysis = Field(default_factory=StructureAnalysis)
    insights: list[str] = Field(default_factory=list)


class BodyLanguageAnalysis(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    posture: int = 0
    gestures: int = 0
    facial_expressions: int = 0
    eye_contact: int = 0
    movement: int = 0
    stability: int = 0
    # facial_expressions and eye_contact have no signal in pose keypoints
    measured: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


class ConfidenceAnalysis(BaseModel):
    score: int = Field(default=0, ge=0, le=100)
    voice_modulation: float = 0.0
    pacing: float = 0.0
    presence: float = 0.0
    recovery: float = 0.0
    insights: list[str] = Field(default_factory=list)


class CompositeAnalysis(BaseModel):
    speech_content: SpeechContent = Field(default_factory=SpeechContent)
    body_language: BodyLanguageAnalysis = Field(default_factory=BodyLanguageAnalysis)
    confidence: ConfidenceAnalysis = Field(default_factory=ConfidenceAnalysis)
    overall_score: int = Field(default=0, ge=0, le=100)
    summary: str = ""
    top_action_items: list[str] = Field(default_factory=list, max_length=5)


# Delivery

class TranscriptSegment(BaseModel):
    text: str
    start: float
    end: float


class DeliveryMetrics(BaseModel):
    pace: int = 0
    clarity: int = 0
    clarity_is_placeholder: bool = True
    variability: int = 0
    wpm: float = 0.0
    pauses: int = 0
    total_pause_seconds: float = 0.0


# Pose

class Keypoint(BaseModel):
    name: str | None = None
    x: float
    y: float
    score: float | None = None


class PoseFrame(BaseModel):
    keypoints: list[Keypoint] = Field(default_factory=list)
    score: float | None = None


class PoseSummary(BaseModel):
    frames: int = 0
    valid_poses: int = 0
    pose_confidence: int = 0
    posture: int = 50
    stability: int = 50
    movement: int = 50
    gestures: int = 50


# Requests / responses

class AnalyzeSpeechRequest(BaseModel):
    transcript: str | None = None
    duration: float | None = None
    pose_data: PoseSummary | None = None
    recording_id: str | None = None
    save: bool = False
    title: str | None = None


class SpeechInput(BaseModel):
    """A validated analysis request."""

    transcript: str
    duration: float = Field(gt=0)
    pose: PoseSummary | None = None


class AnalyzeSpeechResponse(CompositeAnalysis):
    provider: str
    session_id: int | str | None = None
    save_error: str | None = None


class AnalyzeGrammarRequest(BaseModel):
    transcript: str | None = None


class TranscribeAudioRequest(BaseModel):
    audio: str
    format: str | None = None


class TranscribeAudioResponse(BaseModel):
    transcription: str
    segments: list[TranscriptSegment]
    language: str | None = None
    delivery: DeliveryMetrics


class SessionScores(BaseModel):
    speech: int = Field(ge=0, le=100)
    body_language: int = Field(ge=0, le=100)
    confidence: int = Field(ge=0, le=100)
    total: int = Field(ge=0, le=100)


class SpeechSessionCreate(BaseModel):
    title: str = Field(min_length=1)
    transcript: str
    duration: float = Field(gt=0)
    scores: SessionScores
    feedback: str = ""
    metrics: dict[str, float] = Field(default_factory=dict)


class SpeechSession(BaseModel):
    id: int | str
    user_id: str
    title: str
    transcript: str
    duration: float
    speech_score: int
    body_language_score: int
    confidence_score: int
    total_score: int
    feedback: str = ""
    metrics: dict[str, float] = Field(default_factory=dict)
    analysis: dict[str, Any] | None = None
    created_at: datetime


class SpeechSessionList(BaseModel):
    sessions: list[SpeechSession]


class RecordingCreated(BaseModel):
    recording_id: str


class PoseFramesRequest(BaseModel):
    frames: list[PoseFrame] = Field(min_length=1)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class PoseFramesResponse(BaseModel):
    frames: int
    metrics: PoseSummary | None = None
    segments: list[tuple[str, str]] = Field(default_factory=list)
