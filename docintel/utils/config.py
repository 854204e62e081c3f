"""Configuration management for the document intelligence pipeline.

Loads and validates YAML configuration with sensible defaults for the
vision and chat inference services, the classification and field
extraction stages, document handling, and catalog locations.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class VisionConfig(BaseModel):
    """Configuration for the vision inference service (text and stamps)."""

    base_url: str = "http://localhost:11434"
    model: str = "gemma3"
    timeout_seconds: float = 60.0
    temperature: float = 0.1
    top_p: float = 0.9
    top_k: int = 40
    stamp_num_predict: int = 1000


class LLMConfig(BaseModel):
    """Configuration for the chat-completion service."""

    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    timeout_seconds: float = 30.0

    @property
    def api_key(self) -> str:
        """API key read from the configured environment variable."""
        return os.environ.get(self.api_key_env, "")


class ClassifierConfig(BaseModel):
    """Configuration for template classification."""

    classification_prefix_chars: int = 1500
    temperature: float = 0.2
    max_tokens: int = 500


class FieldExtractionConfig(BaseModel):
    """Configuration for template field extraction."""

    extraction_prefix_chars: int = 2000
    temperature: float = 0.1
    max_tokens: int = 2000


class DocumentConfig(BaseModel):
    """Configuration for document loading and batch processing."""

    pdf_dpi: int = 200
    max_workers: int = 4


class CatalogConfig(BaseModel):
    """Locations of the template catalog and the stamp registry override."""

    templates_path: str = "configs/templates.yaml"
    stamps_path: str | None = None


class ServerConfig(BaseModel):
    """Configuration for the API server."""

    host: str = "0.0.0.0"
    port: int = 8000


class AppConfig(BaseModel):
    """Top-level application configuration."""

    vision: VisionConfig = Field(default_factory=VisionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    field_extraction: FieldExtractionConfig = Field(
        default_factory=FieldExtractionConfig
    )
    document: DocumentConfig = Field(default_factory=DocumentConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
