import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _split_origins(value):
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Settings:
    # Database
    DATABASE_PATH = os.getenv("DATABASE_PATH", os.path.join("data", "lms.db"))

    # AI gateway (any OpenAI-compatible chat-completions host)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or os.getenv("GROQ_API_KEY")
    AI_BASE_URL = os.getenv("AI_BASE_URL")
    AI_MODEL = os.getenv("AI_MODEL", "gpt-3.5-turbo")
    AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

    # Security
    TOKEN_EXPIRE_DAYS = int(os.getenv("TOKEN_EXPIRE_DAYS", "7"))

    # CORS
    ALLOWED_ORIGINS = _split_origins(os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173",
    ))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Grading
    DEFAULT_PASSING_PERCENTAGE = 50
    DEFAULT_MAX_SCORE = 100

settings = Settings()
