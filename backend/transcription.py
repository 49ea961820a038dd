from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
import shutil
import tempfile
from functools import lru_cache
from pathlib import Path

import av

import config
from delivery import analyze_delivery
from errors import InputValidationError, TranscriptionUnavailableError
from schemas import TranscribeAudioResponse, TranscriptSegment

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(
    r"^data:audio/(?P<format>[\w.+-]+)(?:;[^,;]+)*;base64,(?P<data>.*)$", re.DOTALL
)
_SAFE_FORMAT = re.compile(r"[^a-z0-9]")
DEFAULT_FORMAT = "webm"


def decode_audio_payload(audio: str, audio_format: str | None = None) -> tuple[bytes, str]:
    """Decode a `data:audio/<fmt>;base64,...` URI into (bytes, file extension)."""
    match = _DATA_URI.match((audio or "").strip())
    if match is None:
        raise InputValidationError("Audio must be a base64 data URI (data:audio/<format>;base64,...).")

    try:
        payload = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InputValidationError("Audio payload is not valid base64.") from exc

    if not payload:
        raise InputValidationError("Audio payload is empty.")
    if len(payload) > config.MAX_AUDIO_BYTES:
        raise InputValidationError(
            f"Audio payload exceeds the {config.MAX_AUDIO_BYTES} byte limit."
        )

    extension = _SAFE_FORMAT.sub("", (audio_format or match.group("format")).lower())
    return payload, extension or DEFAULT_FORMAT


@lru_cache(maxsize=1)
def get_whisper_model():
    from faster_whisper import WhisperModel

    return WhisperModel(config.WHISPER_MODEL, device="cpu", compute_type="int8")


def transcribe_file(media_path: Path) -> tuple[str, list[TranscriptSegment], str | None]:
    """Returns (transcript, segments, language) for one audio file."""
    if shutil.which("ffmpeg") is None:
        raise TranscriptionUnavailableError(
            "ffmpeg is not installed or not on PATH. Install ffmpeg to enable transcription."
        )

    try:
        model = get_whisper_model()
    except ImportError as exc:
        raise TranscriptionUnavailableError("faster-whisper is not installed.") from exc

    # segments are a lazy generator; decoding errors can surface while iterating
    try:
        raw_segments, info = model.transcribe(str(media_path))
        segments = [
            TranscriptSegment(text=s.text.strip(), start=s.start or 0.0, end=s.end or 0.0)
            for s in raw_segments
        ]
    except (av.error.FFmpegError, ValueError) as exc:
        logger.warning("Audio decoding failed for %s: %s", media_path.name, exc)
        raise InputValidationError("Audio could not be decoded.") from exc

    transcript = " ".join(s.text for s in segments if s.text).strip()
    return transcript, segments, getattr(info, "language", None)


def transcribe_bytes(payload: bytes, extension: str) -> tuple[str, list[TranscriptSegment], str | None]:
    with tempfile.NamedTemporaryFile(delete=False, suffix=f".{extension}") as tmp_file:
        tmp_file.write(payload)
        temp_path = Path(tmp_file.name)

    logger.info("Transcribing %d bytes of %s audio", len(payload), extension)
    try:
        return transcribe_file(temp_path)
    finally:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to delete temp file %s", temp_path)


async def transcribe_audio(audio: str, audio_format: str | None = None) -> TranscribeAudioResponse:
    payload, extension = decode_audio_payload(audio, audio_format)
    transcript, segments, language = await asyncio.to_thread(transcribe_bytes, payload, extension)
    return TranscribeAudioResponse(
        transcription=transcript,
        segments=segments,
        language=language,
        delivery=analyze_delivery(segments),
    )
