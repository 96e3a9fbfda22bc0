from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./data/db.sqlite3"
    api_key: str = ""  # empty = no auth check (local dev)
    data_dir: str = "./data"
    survey_api_url: str = "http://localhost:8080"
    request_timeout_seconds: float = 30.0
    connectivity_timeout_seconds: float = 5.0
    autosave_delay_seconds: float = 2.0
    require_complete_fields: bool = False
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
