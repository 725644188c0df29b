from typing import Annotated, Any, Literal

from pydantic import BeforeValidator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def parse_csv(v: Any) -> list[str] | Any:
    if isinstance(v, str):
        return [i.strip() for i in v.split(",") if i.strip()]
    return v


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Material Synthesis"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Generative service
    LLM_API_KEY: str | None = None
    LLM_BASE_URL: str | None = None
    MODEL_DEFAULT: str = "gpt-4o"
    MODEL_DESIGN: str | None = None
    MODEL_GENERATE: str | None = None
    MODEL_FORMAT: str | None = None

    # Pipeline
    DESIGN_STAGE_ENABLED: bool = True
    FORMAT_STAGE_ENABLED: bool = True
    GENERATE_RETRY_DELAY_SECONDS: float = 1.0
    DESCRIPTION_MIN_LENGTH: int = 10
    SYNTHESIS_COST: int = 1
    CONTENT_SCHEMA: Literal["feat", "tactic"] = "feat"
    KNOWLEDGE_BASE_PATH: str | None = None

    # Quota ledger
    DATABASE_URL: str = "sqlite:///./synthesis.db"
    QUOTA_BACKEND: Literal["memory", "sql"] = "sql"
    PRIVILEGED_IDENTITIES: Annotated[list[str], NoDecode, BeforeValidator(parse_csv)] = []


settings = Settings()  # type: ignore
