from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Groq
    groq_api_key: str = "gsk_placeholder"
    default_model: str = "llama-3.3-70b-versatile"

    # Live lecture monitoring
    alert_interval_seconds: float = 5.0
    alert_probability: float = 0.1
    report_delay_seconds: float = 3.0
    report_timeout_seconds: float = 30.0
    permission_timeout_seconds: float = 60.0

    # Recording
    sample_rate: int = 16000
    save_recordings: bool = False
    recordings_root: str = "recordings"

    # Key-value store: "memory" or "sqlite"
    store_backend: str = "memory"
    database_path: str = "learning_agent.db"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
