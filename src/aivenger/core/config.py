"""Configuration management for the AIVenger generation service.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the AIVENGER_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (AIVENGER_* prefix)
2. .env file in the project root
3. Default values defined in AivengerConfig

Example .env file:
    AIVENGER_OPENROUTER_API_KEY=sk-or-...
    AIVENGER_OPENROUTER_MODEL=google/gemini-2.5-flash-image
    AIVENGER_SESSION_SECRET=change-me
    AIVENGER_STORAGE_DIR=storage

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
The API layer reads it once during application startup and hands explicit
objects (``ProviderSettings``, store paths, costs) to the components it
builds.  Business logic never reads the process environment directly.

Usage Example
-------------
    from aivenger.core.config import config

    print(config.generation_cost)
    provider_settings = config.provider_settings()

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- data_dir: For the SQLite database
- storage_dir: For uploaded originals and generated images

Credit Policy
-------------
- generation_cost: credits debited per accepted generation (10)
- starting_credits: balance given to a newly provisioned account (30)

See Also
--------
- ProviderSettings: the explicit provider configuration handed to
  :class:`~aivenger.core.provider.ImageGenerationClient`
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder session secret.  The service refuses to start while it is in use.
DEFAULT_SESSION_SECRET = "CHANGE_ME_PLEASE"


class ProviderSettings(BaseModel):
    """Immutable settings for the external image-generation provider.

    Built from :class:`AivengerConfig` by :meth:`AivengerConfig.provider_settings`
    and passed to the client at construction time.

    Attributes:
        api_key: Bearer token for the provider.  ``None`` means unconfigured.
        base_url: Base URL of the OpenAI-compatible API (no trailing slash).
        model: Model identifier requested for generation.
        timeout: Seconds before a provider call is abandoned.
        app_url: Sent as ``HTTP-Referer`` for provider attribution.
        app_title: Sent as ``X-Title`` for provider attribution.
    """

    model_config = ConfigDict(frozen=True)

    api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "google/gemini-2.5-flash-image"
    timeout: float = Field(default=120.0, gt=0)
    app_url: str = "http://localhost:3000"
    app_title: str = "AIVenger"


class AivengerConfig(BaseSettings):
    """Main configuration for the AIVenger generation service.

    This class uses Pydantic Settings to manage all application configuration.
    Values are loaded from environment variables with the AIVENGER_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Provider Settings:
        openrouter_api_key : str | None
            Bearer token for the OpenRouter API
        openrouter_base_url : str
            Base URL of the OpenAI-compatible endpoint
        openrouter_model : str
            Multimodal model that returns images
        provider_timeout : float
            Timeout in seconds for provider calls
        app_url, app_title : str
            Attribution headers sent to the provider

    Credit Policy:
        generation_cost : int
            Credits debited per accepted generation
        starting_credits : int
            Balance given to a newly provisioned account

    Upload Limits:
        max_upload_bytes : int
            Largest accepted source image
        accepted_mime_types : list[str]
            MIME types accepted for the source image

    Paths:
        data_dir : Path
            Directory holding the SQLite database
        database_path : Path | None
            Explicit database file (defaults to data_dir / "aivenger.db")
        storage_dir : Path
            Root directory of the local artifact store
        storage_url_prefix : str
            URL prefix under which stored artifacts are served
        prompt_catalog_file : Path | None
            Optional JSON file overriding the built-in prompt catalogs

    Sessions:
        session_secret : str
            HMAC secret used to verify session tokens.  Must be set; the
            placeholder default is rejected by :meth:`check_session_secret`
        session_algorithm : str
            JWT algorithm (HS256)

    Server:
        server_host, server_port, log_level

    Notes
    -----
    - Directories are created automatically if they don't exist
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AIVENGER_",
        case_sensitive=False,
    )

    # Provider settings
    openrouter_api_key: str | None = Field(
        default=None,
        description="Bearer token for the OpenRouter API",
    )
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenAI-compatible endpoint",
    )
    openrouter_model: str = Field(
        default="google/gemini-2.5-flash-image",
        description="Multimodal model used for image generation",
    )
    provider_timeout: float = Field(
        default=120.0,
        description="Timeout in seconds for provider calls",
        gt=0,
    )
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the application (HTTP-Referer header)",
    )
    app_title: str = Field(
        default="AIVenger",
        description="Application title (X-Title header)",
    )

    # Credit policy
    generation_cost: int = Field(
        default=10,
        description="Credits debited per accepted generation",
        ge=1,
    )
    starting_credits: int = Field(
        default=30,
        description="Balance given to a newly provisioned account",
        ge=0,
    )

    # Upload limits
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted source image in bytes",
        ge=1,
    )
    accepted_mime_types: list[str] = Field(
        default=["image/jpeg", "image/jpg", "image/png", "image/webp"],
        description="MIME types accepted for the source image",
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the SQLite database",
    )
    database_path: Path | None = Field(
        default=None,
        description="SQLite database file (defaults to data_dir/aivenger.db)",
    )
    storage_dir: Path = Field(
        default=Path("storage"),
        description="Root directory of the local artifact store",
    )
    storage_url_prefix: str = Field(
        default="/storage",
        description="URL prefix under which stored artifacts are served",
    )
    prompt_catalog_file: Path | None = Field(
        default=None,
        description="Optional JSON file overriding the built-in prompt catalogs",
    )

    # Sessions
    session_secret: str = Field(
        default=DEFAULT_SESSION_SECRET,
        description="HMAC secret used to verify session tokens (must be overridden)",
    )
    session_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address",
    )
    server_port: int = Field(
        default=8000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level used by the CLI entry point",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        if self.database_path is None:
            self.database_path = self.data_dir / "aivenger.db"

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def check_session_secret(self) -> None:
        """Reject a missing or placeholder session secret.

        Raises:
            ValueError: If ``session_secret`` is empty or still the placeholder
        """
        if not self.session_secret or self.session_secret == DEFAULT_SESSION_SECRET:
            raise ValueError(
                "AIVENGER_SESSION_SECRET must be set to a private value; "
                "the placeholder default would accept forged session tokens"
            )

    def provider_settings(self) -> ProviderSettings:
        """Build the explicit provider configuration for the generation client."""
        return ProviderSettings(
            api_key=self.openrouter_api_key,
            base_url=self.openrouter_base_url.rstrip("/"),
            model=self.openrouter_model,
            timeout=self.provider_timeout,
            app_url=self.app_url,
            app_title=self.app_title,
        )


# Global configuration instance
# Loaded from AIVENGER_* environment variables and the .env file.
config = AivengerConfig()
