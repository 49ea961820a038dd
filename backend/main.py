from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from analysis import FanOutAnalyzer, SingleShotAnalyzer
from errors import (
    AnalysisFailedError,
    InputValidationError,
    PersistenceError,
    RecordingForbiddenError,
    RecordingNotFoundError,
    TranscriptionUnavailableError,
)
from fallback import DeterministicAnalyzer
from feedback import error_analysis
from language.scoring import analyze_language
from llm import InsightProvider, build_provider
from orchestrator import TAG_NONE, ProviderFallbackOrchestrator, validate_request
from recordings import RecordingRegistry
from schemas import (
    AnalyzeGrammarRequest,
    AnalyzeSpeechRequest,
    AnalyzeSpeechResponse,
    LanguageAnalysis,
    PoseFramesRequest,
    PoseFramesResponse,
    RecordingCreated,
    SpeechSession,
    SpeechSessionCreate,
    SpeechSessionList,
    TranscribeAudioRequest,
    TranscribeAudioResponse,
)
from storage import SpeechSessionStore, build_session_store, session_from_analysis
from transcription import transcribe_audio

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "Practice session"

app = FastAPI(
    title="Speech Coach API",
    version="0.1.0",
    description="Score practice speeches and return coaching feedback.",
)

allow_credentials = "*" not in config.CORS_ALLOW_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS or ["*"],
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

@lru_cache(maxsize=1)
def get_providers() -> tuple[InsightProvider | None, InsightProvider | None]:
    return build_provider(config.PRIMARY_PROVIDER), build_provider(config.SECONDARY_PROVIDER)


def get_language_provider() -> InsightProvider | None:
    return get_providers()[0]


@lru_cache(maxsize=1)
def get_orchestrator() -> ProviderFallbackOrchestrator:
    primary, secondary = get_providers()
    return ProviderFallbackOrchestrator(
        primary=FanOutAnalyzer(primary) if primary else None,
        secondary=SingleShotAnalyzer(secondary) if secondary else None,
        local=DeterministicAnalyzer(),
    )


@lru_cache(maxsize=1)
def get_session_store() -> SpeechSessionStore:
    return build_session_store()


@lru_cache(maxsize=1)
def get_recordings() -> RecordingRegistry:
    return RecordingRegistry()


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the auth layer in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required.")
    return x_user_id.strip()


# Error mapping

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(TranscriptionUnavailableError)
async def transcription_unavailable_handler(
    request: Request, exc: TranscriptionUnavailableError
) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(RecordingNotFoundError)
async def recording_not_found_handler(request: Request, exc: RecordingNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Recording not found."})


@app.exception_handler(RecordingForbiddenError)
async def recording_forbidden_handler(request: Request, exc: RecordingForbiddenError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": "Recording belongs to another user."})


@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": f"Speech session storage failed: {exc}"})


# Routes

@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Speech Coach API is running."}


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/analyze-speech", response_model=AnalyzeSpeechResponse)
async def analyze_speech(
    payload: AnalyzeSpeechRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: ProviderFallbackOrchestrator = Depends(get_orchestrator),
    store: SpeechSessionStore = Depends(get_session_store),
    recordings: RecordingRegistry = Depends(get_recordings),
):
    speech = validate_request(payload)

    if payload.recording_id:
        pose = recordings.release(payload.recording_id, user_id)
        if payload.pose_data is None and pose is not None:
            payload = payload.model_copy(update={"pose_data": pose})

    try:
        analysis, provider = await orchestrator.run(payload)
    except InputValidationError:
        raise
    except AnalysisFailedError as exc:
        logger.error("Speech analysis failed: %s", exc)
        failed = AnalyzeSpeechResponse(**error_analysis().model_dump(), provider=TAG_NONE)
        return JSONResponse(status_code=500, content=failed.model_dump())
    except Exception:
        logger.exception("Unexpected error during speech analysis")
        failed = AnalyzeSpeechResponse(**error_analysis().model_dump(), provider=TAG_NONE)
        return JSONResponse(status_code=500, content=failed.model_dump())

    response = AnalyzeSpeechResponse(**analysis.model_dump(), provider=provider)

    if payload.save:
        record = session_from_analysis(
            title=(payload.title or "").strip() or DEFAULT_SESSION_TITLE,
            transcript=speech.transcript,
            duration=speech.duration,
            analysis=analysis,
        )
        try:
            session = await store.create(user_id, record, analysis)
            response.session_id = session.id
        except PersistenceError as exc:
            logger.warning("Analysis returned without saving: %s", exc)
            response.save_error = str(exc)

    return response


@app.post("/api/analyze-grammar", response_model=LanguageAnalysis)
async def analyze_grammar(
    payload: AnalyzeGrammarRequest,
    user_id: str = Depends(get_user_id),
    provider: InsightProvider | None = Depends(get_language_provider),
) -> LanguageAnalysis:
    if payload.transcript is None:
        raise HTTPException(status_code=400, detail="transcript is required.")
    return await analyze_language(payload.transcript, provider)


@app.post("/api/transcribe-audio", response_model=TranscribeAudioResponse)
async def transcribe(
    payload: TranscribeAudioRequest,
    user_id: str = Depends(get_user_id),
) -> TranscribeAudioResponse:
    return await transcribe_audio(payload.audio, payload.format)


@app.post("/api/speech-sessions", response_model=SpeechSession, status_code=201)
async def create_speech_session(
    payload: SpeechSessionCreate,
    user_id: str = Depends(get_user_id),
    store: SpeechSessionStore = Depends(get_session_store),
) -> SpeechSession:
    return await store.create(user_id, payload)


@app.get("/api/speech-sessions", response_model=SpeechSessionList)
async def list_speech_sessions(
    user_id: str = Depends(get_user_id),
    store: SpeechSessionStore = Depends(get_session_store),
) -> SpeechSessionList:
    return SpeechSessionList(sessions=await store.list_for_user(user_id))


@app.get("/api/speech-sessions/{session_id}", response_model=SpeechSession)
async def get_speech_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    store: SpeechSessionStore = Depends(get_session_store),
) -> SpeechSession:
    session = await store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Speech session not found.")
    if session.user_id != user_id:
        raise HTTPException(status_code=403, detail="Speech session belongs to another user.")
    return session


@app.post("/api/recordings", response_model=RecordingCreated, status_code=201)
async def start_recording(
    user_id: str = Depends(get_user_id),
    recordings: RecordingRegistry = Depends(get_recordings),
) -> RecordingCreated:
    return RecordingCreated(recording_id=recordings.start(user_id).id)


@app.post("/api/recordings/{recording_id}/frames", response_model=PoseFramesResponse)
async def push_pose_frames(
    recording_id: str,
    payload: PoseFramesRequest,
    user_id: str = Depends(get_user_id),
    recordings: RecordingRegistry = Depends(get_recordings),
) -> PoseFramesResponse:
    return recordings.push_frames(
        recording_id, user_id, payload.frames, payload.width, payload.height
    )


@app.delete("/api/recordings/{recording_id}")
async def abort_recording(
    recording_id: str,
    user_id: str = Depends(get_user_id),
    recordings: RecordingRegistry = Depends(get_recordings),
) -> dict[str, str]:
    recordings.abort(recording_id, user_id)
    return {"status": "aborted"}
