from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_name: str = "SATCraft AI"
    debug: bool = False

    # Supabase (auth collaborator)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # OpenAI
    openai_api_key: str = ""

    # Gemini
    gemini_api_key: str = ""
    llm_provider: str = "openai"

    # Models per pipeline role
    generator_model: str = "gpt-4o"
    validator_model: str = "gpt-4o-mini"
    fallback_model: str = "gpt-4o-mini"
    chat_model: str = "gemini-2.5-flash"
    gemini_model: str = "gemini-2.5-flash"

    # Generation policy
    target_score: float = 0.8
    floor_score: float = 0.7
    max_iterations: int = 3
    parse_retries: int = 3
    parse_backoff_seconds: float = 0.5
    max_examples: int = 5

    # Practice test layout
    rw_module_questions: int = 27
    math_module_questions: int = 22
    rw_section_minutes: int = 64
    math_section_minutes: int = 70
    break_minutes: int = 10

    # Session store eviction
    session_idle_minutes: int = 180
    completed_session_minutes: int = 30

    # CORS
    frontend_url: str = "http://localhost:5173"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
