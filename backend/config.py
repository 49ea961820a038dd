"""
Configuration for the speech coach backend.
Values come from environment variables, optionally loaded from a .env file.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).parent
PROJECT_ROOT = BACKEND_DIR.parent

for env_file in (PROJECT_ROOT / ".env", BACKEND_DIR / ".env"):
    if env_file.exists():
        load_dotenv(env_file)
        break

# Provider selection
PRIMARY_PROVIDER = os.getenv("PRIMARY_PROVIDER", "openai").strip().lower()
SECONDARY_PROVIDER = os.getenv("SECONDARY_PROVIDER", "gemini").strip().lower()
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))

# OpenAI
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")

# Gemini
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-pro")

# Ollama
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "qwen3:8b")

# Transcription
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base")
MAX_AUDIO_BYTES = int(os.getenv("MAX_AUDIO_BYTES", str(25 * 1024 * 1024)))

# Persistence
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SPEECH_SESSIONS_TABLE = os.getenv("SPEECH_SESSIONS_TABLE", "speech_sessions")

# Recordings
RECORDING_IDLE_SECONDS = float(os.getenv("RECORDING_IDLE_SECONDS", "300"))
MAX_RECORDINGS_PER_USER = int(os.getenv("MAX_RECORDINGS_PER_USER", "3"))

# HTTP
CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
    if origin.strip()
]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
