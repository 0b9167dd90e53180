from pathlib import Path
from types import SimpleNamespace

import pytest

from interlinear.configuration import get_settings, validate_provider_settings
from interlinear.errors import TranslationProviderConfigurationError


def _settings(**overrides) -> SimpleNamespace:
    values = dict(
        OPENAI_API_KEY=None,
        DEEPL_AUTH_KEY=None,
        AZURE_OPENAI_API_KEY=None,
        AZURE_OPENAI_ENDPOINT=None,
        AZURE_OPENAI_API_VERSION=None,
        AZURE_OPENAI_DEPLOYMENT_NAME=None,
        INTERLINEAR_CHUNK_SIZE=50,
        INTERLINEAR_MAX_ATTEMPTS=3,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_echo_needs_no_credentials() -> None:
    validate_provider_settings(_settings(), "echo")


def test_missing_provider_credentials_are_listed() -> None:
    with pytest.raises(TranslationProviderConfigurationError, match="OPENAI_API_KEY"):
        validate_provider_settings(_settings(), "openai")

    with pytest.raises(TranslationProviderConfigurationError) as excinfo:
        validate_provider_settings(_settings(AZURE_OPENAI_API_KEY="key"), "azure_openai")
    assert "AZURE_OPENAI_ENDPOINT" in str(excinfo.value)
    assert "AZURE_OPENAI_API_KEY," not in str(excinfo.value)


def test_numeric_limits_are_checked() -> None:
    with pytest.raises(TranslationProviderConfigurationError, match="INTERLINEAR_CHUNK_SIZE"):
        validate_provider_settings(_settings(INTERLINEAR_CHUNK_SIZE=0), "echo")


def test_dotenv_values_are_loaded(tmp_path: Path, monkeypatch) -> None:
    for key in ("TRANSLATION_PROVIDER", "INTERLINEAR_TARGET_LANGUAGE", "DEEPL_AUTH_KEY"):
        monkeypatch.delenv(key, raising=False)
    (tmp_path / ".env").write_text(
        "TRANSLATION_PROVIDER=GPT\nINTERLINEAR_TARGET_LANGUAGE=en\nUNRELATED=1\n",
        encoding="utf-8",
    )

    settings = get_settings(app_dir=tmp_path)

    assert settings.TRANSLATION_PROVIDER == "openai"
    assert settings.INTERLINEAR_TARGET_LANGUAGE == "en"
    assert settings.INTERLINEAR_SOURCE_LANGUAGE == "ja"
    assert settings.DEEPL_AUTH_KEY is None
