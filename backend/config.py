"""Configuration for the salary analysis service."""
from pydantic_settings import BaseSettings
from pathlib import Path

# Base directory for backend
BASE_DIR = Path(__file__).resolve().parent

# Prompt and output schema templates
TEMPLATES_DIR = BASE_DIR / "templates"


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "SalaryLens"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    # File handling
    max_file_size: int = 10 * 1024 * 1024
    allowed_content_types: list[str] = ["application/pdf", "application/x-pdf"]

    # LLM provider: "gemini" or "ollama"
    llm_provider: str = "gemini"
    llm_temperature: float = 0.2

    # Gemini
    google_api_key: str = ""
    google_project_id: str = "salary-genkit"
    gemini_model: str = "gemini-2.0-flash"

    # Ollama (text-only, renders scanned PDFs to images)
    ollama_host: str | None = None
    ollama_model: str = "llama3.2-vision"
    render_quality: str = "base"
    max_pages: int = 10

    # Retry policy
    max_retries: int = 3
    retry_delay_ms: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()


# PDF render presets for vision models
RENDER_QUALITY_PRESETS = {
    "tiny": {
        "matrix_scale": 1.0,
        "description": "Fastest, low detail",
    },
    "small": {
        "matrix_scale": 1.5,
        "description": "Quick processing",
    },
    "base": {
        "matrix_scale": 2.0,
        "description": "Balanced quality/speed",
    },
    "large": {
        "matrix_scale": 3.0,
        "description": "High detail, slower",
    }
}


def get_render_quality_settings(quality: str) -> dict:
    """Get render settings for a quality preset."""
    return RENDER_QUALITY_PRESETS.get(quality, RENDER_QUALITY_PRESETS["base"])
