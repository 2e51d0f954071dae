from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    APP_NAME: str = "StudyNotes"
    ENV: str = "local"

    # llm
    # Providers:
    # - groq: OpenAI-compatible endpoint at GROQ_BASE_URL (default)
    # - openai: api.openai.com
    # - ollama: local /api/chat, no key needed
    LLM_PROVIDER: str = "groq"  # groq|openai|ollama
    GROQ_API_KEY: str | None = None
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_KEEP_ALIVE: str = "30m"

    NOTES_MODEL: str = "llama-3.3-70b-versatile"
    NOTES_TEMPERATURE: float = 0.3
    NOTES_MAX_TOKENS: int = 2048
    NOTES_MAX_TOKENS_DETAILED: int = 6000
    CHAT_MODEL: str = "llama-3.1-8b-instant"
    CHAT_TEMPERATURE: float = 0.7
    CHAT_MAX_TOKENS: int = 1024

    # speech-to-text (OpenAI-compatible audio.transcriptions)
    SPEECH_PROVIDER: str = "groq"  # groq|openai
    SPEECH_MODEL: str = "whisper-large-v3"
    SPEECH_LANGUAGE: str | None = "en"
    FFMPEG_BINARY: str = "ffmpeg"
    # Always convert uploads to mono mp3 before transcription (smaller upload).
    VIDEO_EXTRACT_AUDIO: bool = False

    # generation pipeline
    NOTES_MODE: str = "chunked"  # chunked|single
    # 12k chars is ~3k tokens; with ~1k output tokens it fits a 6k TPM quota.
    CHUNK_SIZE: int = 12000
    CHUNK_OVERLAP: int = 500
    SINGLE_CALL_MAX_CHARS: int = 30000
    GENERATION_MAX_ATTEMPTS: int = 4
    RETRY_BASE_DELAY_S: float = 5.0
    RETRY_BACKOFF_FACTOR: float = 2.0
    INTER_CHUNK_DELAY_S: float = 2.0
    GENERATION_CONCURRENCY: int = 1

    # input limits
    MAX_TEXT_LENGTH: int = 200_000
    MAX_DOCUMENT_SIZE_MB: float = 10
    # 50MB on a regular host; use 4.5 on serverless platforms with body limits.
    MAX_VIDEO_SIZE_MB: float = 50

    # youtube
    YOUTUBE_API_KEY: str | None = None
    YOUTUBE_TRANSCRIPT_LANGUAGES: str = "en"
    # Comma-separated, tried in order. "audio" also needs YOUTUBE_AUDIO_FALLBACK.
    YOUTUBE_STRATEGIES: str = "transcript_api,caption_track,data_api_captions,audio,metadata_api,page_metadata"
    # Downloads audio with yt-dlp and transcribes it. Needs disk + subprocess access.
    YOUTUBE_AUDIO_FALLBACK: bool = False

    # timeouts
    HTTP_TIMEOUT_S: float = 30.0
    LLM_TIMEOUT_S: float = 180.0
    PIPELINE_TIMEOUT_S: float | None = None

    # CORS (for browser-based UIs)
    # Comma-separated list of allowed origins.
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def youtube_languages(self) -> list[str]:
        return [x.strip() for x in self.YOUTUBE_TRANSCRIPT_LANGUAGES.split(",") if x.strip()]

    @property
    def youtube_strategies(self) -> list[str]:
        return [x.strip() for x in self.YOUTUBE_STRATEGIES.split(",") if x.strip()]

settings = Settings()
