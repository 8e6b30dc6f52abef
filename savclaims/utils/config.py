"""Configuration management for the SAV claim workflow."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv

DEFAULT_ACCEPTED_IMAGE_TYPES = [
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/svg+xml",
    "image/heic",
    "image/heif",
]

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


@dataclass
class ApiConfig:
    """Storage proxy endpoint used by the client side."""
    url: str = "http://localhost:3000"
    api_key: str = ""
    timeout_seconds: float = 30.0


@dataclass
class RetryConfig:
    """Retry budget for outbound calls."""
    max_attempts: int = 3
    base_delay_ms: int = 1000


@dataclass
class WebhookConfig:
    """Automation webhook receiving the final claim payload."""
    sav_url: str = ""


@dataclass
class StorageConfig:
    """File storage backend configuration."""
    root_dir: str = "data/storage"
    root_folder: str = "SAV_Images"
    public_base_url: str = "http://localhost:3000/files"


@dataclass
class ServerConfig:
    """Storage proxy server configuration."""
    api_key: str = ""
    environment: str = "development"
    max_upload_mb: int = 25
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@dataclass
class AttachmentConfig:
    """Photo intake limits."""
    max_file_mb: int = 10
    accepted_types: List[str] = field(default_factory=lambda: list(DEFAULT_ACCEPTED_IMAGE_TYPES))


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str = ""


@dataclass
class Config:
    """Main configuration class."""
    api: ApiConfig = field(default_factory=ApiConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    attachments: AttachmentConfig = field(default_factory=AttachmentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str = "config.yaml") -> "Config":
        """
        Load configuration from file and environment variables.

        Environment variables override config file values:
        - API_URL
        - API_KEY (client header and server check)
        - WEBHOOK_URL_DATA_SAV
        - STORAGE_ROOT
        - ONEDRIVE_FOLDER
        - PUBLIC_BASE_URL
        - APP_ENV
        - LOG_LEVEL

        A missing config file is not an error: built-in defaults are used.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings
        """
        load_dotenv()

        config_data: Dict[str, Any] = {}
        if Path(config_path).exists():
            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}

        api_data = config_data.get("api", {}) or {}
        retry_data = config_data.get("retry", {}) or {}
        webhook_data = config_data.get("webhook", {}) or {}
        storage_data = config_data.get("storage", {}) or {}
        server_data = config_data.get("server", {}) or {}
        attachment_data = config_data.get("attachments", {}) or {}
        logging_data = config_data.get("logging", {}) or {}

        defaults = cls()
        api_key = os.getenv("API_KEY", api_data.get("api_key", defaults.api.api_key)) or ""

        api_config = ApiConfig(
            url=os.getenv("API_URL", api_data.get("url", defaults.api.url)),
            api_key=api_key,
            timeout_seconds=float(api_data.get("timeout_seconds", defaults.api.timeout_seconds))
        )

        retry_config = RetryConfig(
            max_attempts=int(retry_data.get("max_attempts", defaults.retry.max_attempts)),
            base_delay_ms=int(retry_data.get("base_delay_ms", defaults.retry.base_delay_ms))
        )

        webhook_config = WebhookConfig(
            sav_url=os.getenv("WEBHOOK_URL_DATA_SAV", webhook_data.get("sav_url", "")) or ""
        )

        storage_config = StorageConfig(
            root_dir=os.getenv("STORAGE_ROOT", storage_data.get("root_dir", defaults.storage.root_dir)),
            root_folder=os.getenv("ONEDRIVE_FOLDER", storage_data.get("root_folder", defaults.storage.root_folder)),
            public_base_url=os.getenv(
                "PUBLIC_BASE_URL",
                storage_data.get("public_base_url", defaults.storage.public_base_url)
            )
        )

        server_config = ServerConfig(
            api_key=os.getenv("API_KEY", server_data.get("api_key", defaults.server.api_key)) or "",
            environment=os.getenv("APP_ENV", server_data.get("environment", defaults.server.environment)),
            max_upload_mb=int(server_data.get("max_upload_mb", defaults.server.max_upload_mb)),
            allowed_origins=list(server_data.get("allowed_origins", defaults.server.allowed_origins))
        )

        attachment_config = AttachmentConfig(
            max_file_mb=int(attachment_data.get("max_file_mb", defaults.attachments.max_file_mb)),
            accepted_types=list(attachment_data.get("accepted_types", defaults.attachments.accepted_types))
        )

        logging_config = LoggingConfig(
            level=os.getenv("LOG_LEVEL", logging_data.get("level", defaults.logging.level)),
            format=logging_data.get("format", defaults.logging.format),
            file=logging_data.get("file", defaults.logging.file) or ""
        )

        return cls(
            api=api_config,
            retry=retry_config,
            webhook=webhook_config,
            storage=storage_config,
            server=server_config,
            attachments=attachment_config,
            logging=logging_config,
        )
