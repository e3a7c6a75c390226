from pydantic_settings import BaseSettings
from typing import Any, Dict, List

class Settings(BaseSettings):
    # 数据库配置
    DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"
    DATABASE_ECHO: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # 日志
    LOG_LEVEL: str = "INFO"

    # OpenRouter 配置（OpenAI 兼容接口）
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"
    OPENROUTER_TIMEOUT_MS: int = 30000
    OPENROUTER_DEFAULT_PARAMS: Dict[str, Any] = {}

    # 透传给 OpenRouter 的应用标识
    APP_URL: str = "http://localhost:3000"
    APP_TITLE: str = "10xWordsLearning"

    class Config:
        env_file = ".env"

settings = Settings()
