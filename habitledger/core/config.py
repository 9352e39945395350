from pydantic_settings import BaseSettings
from pydantic import ConfigDict


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Calendar: every "today" is evaluated in this single zone
    REFERENCE_TIMEZONE: str = "UTC"

    # Challenges: default pass threshold handed to terminate() by the scheduler
    CHALLENGE_PASS_THRESHOLD: float = 80.0

    # Penalties
    PENALTY_SWEEP_ENABLED: bool = True

    # Friend graph seed for the in-memory adapter: "alice:bob,alice:carol"
    FRIEND_EDGES: str = ""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
