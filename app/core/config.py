from typing import Optional
from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn


class PostgresSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    host: str = Field(default="localhost", alias="POSTGRES_HOST")
    port: int = Field(default=5432, alias="POSTGRES_DB_PORT")
    db_name: str = Field(default="study_bot", alias="POSTGRES_DB_NAME")
    user: str = Field(default="postgres", alias="POSTGRES_DB_USER")
    password: str = Field(default="postgres", alias="POSTGRES_DB_PASSWORD")
    create_tables: bool = Field(default=True, alias="DB_CREATE_TABLES")

    @computed_field
    def connection_string(self) -> PostgresDsn:
        return PostgresDsn(
            f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db_name}"
        )


class AuthSettings(BaseSettings):
    """Verification settings for tokens issued by the external identity provider."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    jwt_secret: Optional[str] = Field(default=None, alias="AUTH_JWT_SECRET")
    audience: Optional[str] = Field(default="authenticated", alias="AUTH_JWT_AUDIENCE")
    algorithm: str = Field(default="HS256", alias="AUTH_JWT_ALGORITHM")


class GenerationSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    proxy_url: str = Field(
        default="http://localhost:9000/api/gemini", alias="GEMINI_PROXY_URL"
    )
    timeout_seconds: float = Field(default=30.0, alias="GENERATION_TIMEOUT_SECONDS")
    retry_delay_seconds: float = Field(default=1.0, alias="GENERATION_RETRY_DELAY")
    max_retries: int = Field(default=1, alias="GENERATION_MAX_RETRIES")
    history_limit: int = Field(default=10, alias="HISTORY_LIMIT")
    default_quiz_questions: int = Field(default=3, alias="QUIZ_DEFAULT_QUESTIONS")


class StorageSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    avatars_dir: str = Field(default="avatars", alias="AVATARS_DIR")
    max_avatar_bytes: int = Field(default=2 * 1024 * 1024, alias="MAX_AVATAR_BYTES")


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="study-bot", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"

    @computed_field
    def is_testing(self) -> bool:
        return self.mode == "test"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    postgres: PostgresSettings = Field(default_factory=lambda: PostgresSettings())
    auth: AuthSettings = Field(default_factory=lambda: AuthSettings())
    generation: GenerationSettings = Field(default_factory=lambda: GenerationSettings())
    storage: StorageSettings = Field(default_factory=lambda: StorageSettings())

    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", alias="GEMINI_MODEL")


settings = Settings()
