from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv
from typing import Optional

load_dotenv()


class Settings(BaseSettings):
    # Application settings
    app_name: str = "Blog Plugin Runtime"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Content store
    content_dir: str = "content"
    posts_dir: str = "posts"

    # Remote plugin registry
    registry_repo: str = "Jason-purse/blog-plugins"
    registry_branch: str = "main"
    registry_api_url: str = "https://api.github.com"
    registry_token: Optional[str] = None
    registry_local_path: Optional[str] = None
    registry_ttl_seconds: int = 300
    asset_ttl_seconds: int = 300
    upstream_timeout_seconds: float = 10.0

    # Themes
    default_theme_id: str = "theme-editorial"

    # Revalidation / pre-warm
    site_base_url: str = "http://localhost:3000"
    prewarm_timeout_seconds: float = 15.0
    prewarm_concurrency: int = 8
    redis_url: Optional[str] = None

    # Admin API
    admin_token: Optional[str] = None

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
