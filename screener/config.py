from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "google/gemini-2.5-flash"
    openrouter_model: str = ""  # optional override of default_model

    # Grounding (OpenRouter web plugin)
    web_search_enabled: bool = True
    web_search_max_results: int = 5

    # Generation
    screening_temperature: float = 0.5
    analysis_temperature: float = 0.3
    allocation_temperature: float = 0.5
    max_tokens: int = 8192

    # Screening
    screening_count: int = 5
    max_sources: int = 3
    stream_string_aware_braces: bool = False

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
