"""Configuration management for the docsheet OCR pipeline.

Loads and validates YAML configuration with defaults for recognition,
page rendering, image pre-processing and the remote OCR services.
Secrets may also be supplied through the environment.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from docsheet.ocr.languages import derive_whitelist, normalize_languages

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DOCSHEET_CONFIG"
DEFAULT_CONFIG_PATH = Path("configs/config.yaml")


class RecognitionConfig(BaseModel):
    """Configuration for the recognition backend selection."""

    engine: str = "tesseract"
    languages: list[str] = Field(default_factory=lambda: ["eng"])
    char_whitelist: str | None = None
    tesseract_cmd: str | None = None
    psm: int = 6
    preserve_interword_spaces: bool = True


class RenderingConfig(BaseModel):
    """Resolution used when rasterising document pages."""

    processing_dpi: int = 144
    preview_dpi: int = 36


class PreprocessingConfig(BaseModel):
    """Configuration for the optional per-page image pre-processing."""

    binarize_enabled: bool = False
    binarize_threshold: int = 128
    service_url: str | None = None
    service_timeout: float = 30.0


class ServicesConfig(BaseModel):
    """Endpoints and credentials for the remote recognition services."""

    ocr_space_url: str = "https://api.ocr.space/parse/image"
    ocr_space_api_key: str = ""
    ocr_space_timeout: float = 60.0
    ocr_space_engine: int = 2
    aws_region: str | None = None


class AppConfig(BaseModel):
    """Top-level application configuration."""

    recognition: RecognitionConfig = Field(default_factory=RecognitionConfig)
    rendering: RenderingConfig = Field(default_factory=RenderingConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    log_level: str = "INFO"


class RunSettings(BaseModel):
    """Immutable settings for a single processing run.

    Built from :class:`AppConfig` plus per-run choices so that a run never
    reads shared configuration while it is in flight.
    """

    model_config = ConfigDict(frozen=True)

    engine: str
    languages: tuple[str, ...]
    char_whitelist: str
    tesseract_cmd: str | None = None
    psm: int = 6
    preserve_interword_spaces: bool = True
    binarize: bool = False
    binarize_threshold: int = 128
    preprocess_url: str | None = None
    preprocess_timeout: float = 30.0
    ocr_space_url: str = "https://api.ocr.space/parse/image"
    ocr_space_api_key: str = ""
    ocr_space_timeout: float = 60.0
    ocr_space_engine: int = 2
    aws_region: str | None = None

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        engine: str | None = None,
        languages: list[str] | None = None,
        char_whitelist: str | None = None,
    ) -> "RunSettings":
        """Freeze the configuration for one run.

        Args:
            config: Application configuration.
            engine: Backend kind overriding ``config.recognition.engine``.
            languages: Language codes overriding the configured ones.
            char_whitelist: Explicit whitelist; when omitted the configured
                one is used, or one is derived from the languages.

        Raises:
            ConfigurationError: If the language set is empty.
        """
        langs = normalize_languages(languages or config.recognition.languages)
        whitelist = (
            char_whitelist
            or config.recognition.char_whitelist
            or derive_whitelist(langs)
        )
        return cls(
            engine=(engine or config.recognition.engine).lower(),
            languages=tuple(langs),
            char_whitelist=whitelist,
            tesseract_cmd=config.recognition.tesseract_cmd,
            psm=config.recognition.psm,
            preserve_interword_spaces=config.recognition.preserve_interword_spaces,
            binarize=config.preprocessing.binarize_enabled,
            binarize_threshold=config.preprocessing.binarize_threshold,
            preprocess_url=config.preprocessing.service_url or None,
            preprocess_timeout=config.preprocessing.service_timeout,
            ocr_space_url=config.services.ocr_space_url,
            ocr_space_api_key=config.services.ocr_space_api_key,
            ocr_space_timeout=config.services.ocr_space_timeout,
            ocr_space_engine=config.services.ocr_space_engine,
            aws_region=config.services.aws_region,
        )

    def with_overrides(self, **changes: object) -> "RunSettings":
        """Return a copy with some fields replaced."""
        return self.model_copy(update=changes)


_ENV_OVERRIDES = (
    ("OCR_SPACE_API_KEY", "ocr_space_api_key"),
    ("AWS_DEFAULT_REGION", "aws_region"),
)


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    """Fill empty service secrets from environment variables."""
    for env_name, field_name in _ENV_OVERRIDES:
        value = os.environ.get(env_name)
        if value and not getattr(config.services, field_name):
            setattr(config.services, field_name, value)
            logger.debug("Using %s from environment", env_name)
    return config


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file. Defaults to the
            ``DOCSHEET_CONFIG`` environment variable, then
            configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return _apply_env_overrides(AppConfig(**raw))

    logger.info("No config file found at %s, using defaults", path)
    return _apply_env_overrides(AppConfig())
