from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 环境变量优先，其次 .env
    database_url: str = "sqlite:///./toolcrib.db"
    seed_demo_data: bool = True
    log_level: str = "INFO"

    # 班次报告（Gemini），没有 key 时直接走兜底文案
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    report_timeout_seconds: float = 30.0
    report_language: str = "Portuguese"

    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        extra="ignore",
    )


settings = Settings()
