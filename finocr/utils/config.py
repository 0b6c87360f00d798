"""Configuration management for the extraction core.

Loads and validates YAML configuration with sensible defaults for
extraction options, the OCR engine, input validation, and temporary
storage. Per-call overrides are merged over the configured defaults into
an immutable effective-options snapshot.
"""

import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class OcrFallback(StrEnum):
    """When OCR runs for a page that already has digital text."""

    WHEN_EMPTY = "when-empty"
    ALWAYS = "always"
    PREFER_LONGER = "prefer-longer"


class PreprocessingConfig(BaseModel):
    """OCR-oriented image transforms applied before recognition."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    enlarge_factor: float = Field(default=1.0, ge=1.0)
    deskew: bool = False
    # Skew smaller than this is left alone; lines steeper than the max are
    # treated as rules or table borders and ignored.
    deskew_min_angle: float = Field(default=0.5, ge=0.0)
    deskew_max_angle: float = Field(default=45.0, gt=0.0, le=90.0)
    binarize: bool = False


class ExtractOptions(BaseModel):
    """Options for a single extraction call.

    Field names are snake_case; camelCase aliases (``ocrFallback``,
    ``digitalTextThreshold``) are accepted as well.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    languages: tuple[str, ...] = ("eng",)
    concurrency: int = Field(default=4, ge=1)
    dpi: int = Field(default=300, ge=1)
    digital_text_threshold: int = Field(default=20, ge=0)
    ocr_fallback: OcrFallback = OcrFallback.WHEN_EMPTY
    preprocess: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    timeout_ms: int = Field(default=120_000, ge=1)
    retries: int = Field(default=2, ge=0)
    retry_backoff_ms: int = Field(default=1000, ge=0)
    debug: bool = False
    progress_callback: Callable[..., Any] | None = None
    tesseract_config: str = ""
    psm: int = Field(default=3, ge=0, le=13)
    document_timeout_ms: int | None = Field(default=None, ge=1)

    # Unvalidated heuristics, kept tunable.
    prefer_longer_ratio: float = Field(default=0.8, gt=0.0)
    min_fragments: int = Field(default=4, ge=0)
    min_avg_fragment_length: float = Field(default=3.0, ge=0.0)

    @field_validator("languages", mode="before")
    @classmethod
    def _normalize_languages(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = value.replace(",", "+").split("+")
        languages: list[str] = []
        for lang in value:
            lang = str(lang).strip()
            if lang and lang not in languages:
                languages.append(lang)
        if not languages:
            raise ValueError("at least one OCR language is required")
        return tuple(languages)


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR engine."""

    tesseract_cmd: str | None = None


class InputConfig(BaseModel):
    """Limits applied to input files before extraction starts."""

    max_file_size_mb: float = Field(default=50.0, gt=0)
    supported_extensions: tuple[str, ...] = (
        ".pdf",
        ".png",
        ".jpg",
        ".jpeg",
        ".tif",
        ".tiff",
    )


class TempConfig(BaseModel):
    """Location of the process-wide temporary base directory."""

    base_dir: str | None = None


class AppConfig(BaseModel):
    """Top-level application configuration."""

    extract: ExtractOptions = Field(default_factory=ExtractOptions)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    temp: TempConfig = Field(default_factory=TempConfig)
    log_level: str = "INFO"


def resolve_options(
    options: ExtractOptions | Mapping[str, Any] | None = None,
    base: ExtractOptions | None = None,
) -> ExtractOptions:
    """Merge caller options over defaults into an effective snapshot.

    Only fields the caller actually set override ``base``; nested
    preprocessing options are merged field by field.

    Args:
        options: Caller overrides, as a model or a plain mapping.
        base: Defaults to merge over. Uses built-in defaults if ``None``.

    Returns:
        A frozen, validated ``ExtractOptions``.

    Raises:
        pydantic.ValidationError: If an override is out of range.
    """
    base = base or ExtractOptions()
    if options is None:
        return base

    if not isinstance(options, ExtractOptions):
        options = ExtractOptions.model_validate(dict(options))
    overrides = options.model_dump(exclude_unset=True)

    merged = base.model_dump()
    for key, value in overrides.items():
        if key == "preprocess":
            merged["preprocess"] = {**merged["preprocess"], **value}
        else:
            merged[key] = value
    return ExtractOptions.model_validate(merged)


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
