"""
Configuration Management for the Guided Tutor engine

This module provides centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.

Usage:
    from guided_tutor.config import settings

    provider = settings.generation_provider
    budget = settings.prompt_token_budget
"""

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


# Type aliases for clarity
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
Environment = Literal["development", "production", "testing"]
GenerationProvider = Literal["ollama", "openai", "anthropic"]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Create a .env file in the project root with your configuration:
        GENERATION_PROVIDER=ollama
        OLLAMA_MODEL=llama3.2
        LOG_LEVEL=INFO

    Attributes:
        generation_provider: Which generation backend to use
        openai_api_key: OpenAI API key (openai provider only)
        anthropic_api_key: Anthropic API key (anthropic provider only)
        ollama_base_url: Base URL of a local Ollama server

        default_temperature: Sampling temperature for generation
        default_max_tokens: Response length ceiling
        llm_max_retries: Transport-level retries inside an adapter
        llm_timeout_seconds: HTTP timeout for a single backend request

        max_generation_retries: Regenerations allowed after a failed verdict
        generation_timeout_seconds: Ceiling for one generation attempt
        turn_timeout_seconds: Ceiling for a whole turn, retries included
        prompt_token_budget: Maximum estimated tokens in a rendered prompt
        max_conversation_history: Transcript messages kept on a session
        assessment_enabled: Default for placement assessment on new sessions

        templates_dir: Directory of instructional templates
        lessons_dir: Directory of lesson JSON files
        instructors_dir: Directory of instructor profile JSON files
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # Generation Provider
    # ===========================================
    generation_provider: GenerationProvider = "ollama"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-sonnet-latest"
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"

    # ===========================================
    # Environment
    # ===========================================
    env: Environment = "development"
    debug: bool = True

    # ===========================================
    # Logging Configuration
    # ===========================================
    log_level: LogLevel = "INFO"
    log_to_file: bool = True
    log_file_path: str = "logs/guided_tutor.log"
    log_format: Literal["json", "text"] = "json"

    # Verbose logging options
    log_prompts: bool = False
    log_state_changes: bool = True

    # ===========================================
    # Generation Parameters
    # ===========================================
    default_temperature: float = 0.7
    default_max_tokens: int = 1024
    llm_max_retries: int = 3
    llm_timeout_seconds: int = 60

    # ===========================================
    # Orchestration
    # ===========================================
    max_generation_retries: int = 2
    generation_timeout_seconds: float = 30.0
    turn_timeout_seconds: float = 90.0
    prompt_token_budget: int = 6000
    max_conversation_history: int = 10
    assessment_enabled: bool = True

    # ===========================================
    # Content
    # ===========================================
    templates_dir: str = "config/prompts"
    lessons_dir: str = "data/lessons"
    instructors_dir: str = "data/instructors"
    default_instructor_id: str = "socratic_guide"

    # ===========================================
    # Server Configuration
    # ===========================================
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.

    Returns:
        Settings instance loaded from environment
    """
    return Settings()


settings = get_settings()
