import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    database_url: str
    sql_echo: bool = False
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    token_lifespan_minutes: int = 60 * 24 * 14
    token_batch_buffer_seconds: int = 5
    max_clients_per_user: int = 10
    bcrypt_rounds: int = 12
    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# database_url and jwt_secret_key come from DATABASE_URL / JWT_SECRET_KEY or .env
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
