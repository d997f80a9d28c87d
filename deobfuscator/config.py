from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    host: str = "0.0.0.0"
    port: int = 7653
    debug: bool = False

    request_timeout: int = 10
    connect_timeout: float = 10.0
    max_retries: int = 1
    fetch_workers: int = 4

    # Resolve client version / visitor id from the service worker and evaluate
    # the player's global string array.
    use_ejs: bool = False
    # Mobile web is the secondary variant; TV is always enabled.
    use_mobile_web: bool = True
    # None follows use_ejs: hardcoded player path unless EJS is on.
    use_hardcoded_player_path: bool | None = None
    preload_player_js: bool = False

    # Comma-separated origins for CORS (e.g. "https://app.example.com"). Empty = allow "*" with no credentials.
    cors_origins: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
