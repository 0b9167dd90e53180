"""Prepper-backed configuration loader for Interlinear."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator, Literal, Mapping, Sequence, Tuple

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import TranslationProviderConfigurationError
from .providers import PROVIDER_SYNONYMS

APP_NAME = "Interlinear"


class InterlinearConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    TRANSLATION_PROVIDER: Literal[
        "deepl", "openai", "azure_openai", "legacy_openai", "echo"
    ] = Field(
        default="deepl",
        description="Translation service used for new texts.",
    )
    DEEPL_AUTH_KEY: str | None = Field(default=None, secret=True)
    DEEPL_GLOSSARY_ID: str | None = Field(default=None)
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    INTERLINEAR_MODEL: str | None = Field(default=None)
    INTERLINEAR_SOURCE_LANGUAGE: str = Field(default="ja")
    INTERLINEAR_TARGET_LANGUAGE: str = Field(default="ko")
    INTERLINEAR_CHUNK_SIZE: int = Field(default=50, description="Texts per translation call.")
    INTERLINEAR_CHUNK_PAUSE: float = Field(default=0.5, description="Seconds between calls.")
    INTERLINEAR_MAX_ATTEMPTS: int = Field(default=3)
    INTERLINEAR_BACKOFF_SECONDS: float = Field(default=2.0)
    INTERLINEAR_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_provider(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("TRANSLATION_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower()
                data["TRANSLATION_PROVIDER"] = PROVIDER_SYNONYMS.get(normalized, normalized)
        return data


Layer = Tuple[str, str, Mapping[str, Any]]


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Merge every configuration layer, lowest precedence first, and validate."""

    base_dir = app_dir or Path.cwd()
    provenance = ProvenanceRecorder()
    combined: dict[str, Any] = {}
    try:
        for layer, source, values in _iter_layers(base_dir):
            known = _known_keys(values)
            if known:
                merge_layer(combined, known, provenance=provenance, source=source, layer=layer)
        model = InterlinearConfig.validate(combined, provenance=provenance)
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration schema error: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.to_dict())
        ) from exc
    return ConfigInstance(
        model=model,
        provenance=provenance,
        env_prefix=None,
        schema_cls=InterlinearConfig,
    )


def _iter_layers(app_dir: Path) -> Iterator[Layer]:
    """Yield ``(layer, source, values)``: YAML files, then ``.env``, then the process."""

    for path, label in discover_file_paths(APP_NAME, "yaml", app_dir=app_dir, extra_paths=None):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(f"{path} must contain a mapping of settings.")
        # YAML files may spell keys in lower case.
        yield "file", _path_to_source(label, "yaml", path), {
            str(key).upper(): value for key, value in parsed.items()
        }

    dotenv_path = app_dir / ".env"
    if dotenv_path.is_file():
        yield "env", "env:.env", dotenv_values(dotenv_path)
    yield "env", "env:process", dict(os.environ)


def _known_keys(values: Mapping[str, Any]) -> dict[str, Any]:
    allowed = InterlinearConfig.__field_infos__
    return {key: value for key, value in sorted(values.items()) if key in allowed and value is not None}


# Settings each provider cannot run without.
REQUIRED_SETTINGS: dict[str, tuple[str, ...]] = {
    "deepl": ("DEEPL_AUTH_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "legacy_openai": ("OPENAI_API_KEY",),
    "azure_openai": (
        "AZURE_OPENAI_API_KEY",
        "AZURE_OPENAI_ENDPOINT",
        "AZURE_OPENAI_API_VERSION",
        "AZURE_OPENAI_DEPLOYMENT_NAME",
    ),
}


def validate_provider_settings(settings: InterlinearConfig, provider: str) -> None:
    """Check the credentials and limits needed to run ``provider``."""

    errors: list[str] = []
    missing = [
        name for name in REQUIRED_SETTINGS.get(provider, ()) if not getattr(settings, name, None)
    ]
    if missing:
        errors.append(
            f"The translation provider '{provider}' needs these settings: {', '.join(missing)}."
        )
    for name in ("INTERLINEAR_CHUNK_SIZE", "INTERLINEAR_MAX_ATTEMPTS"):
        if getattr(settings, name) < 1:
            errors.append(f"{name} must be at least 1.")

    if errors:
        raise TranslationProviderConfigurationError(
            "Configuration validation errors detected:\n"
            + "\n".join(f"- {message}" for message in errors)
        )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    lines = ["Configuration validation errors detected:"]
    for entry in entries:
        path = entry.get("path") or ()
        location = (
            ".".join(str(part) for part in path if part)
            if isinstance(path, (list, tuple))
            else str(path)
        )
        message = entry.get("message") or entry.get("msg") or "Invalid value"
        line = f"- {location}: {message}" if location else f"- {message}"
        if entry.get("source"):
            line += f" (from {entry['source']})"
        lines.append(line)
    return "\n".join(lines)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> InterlinearConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()
