"""Translation provider abstractions."""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from .errors import (
    TranslationProviderConfigurationError,
    TranslationProviderError,
    TranslationServiceOverloaded,
)

logger = logging.getLogger(__name__)

OVERLOAD_STATUS_CODES = {429, 503, 529}
OVERLOAD_MESSAGE_MARKERS = ("too many requests", "high load", "429", "overloaded")


def _classify_failure(exc: Exception, *, service: str) -> TranslationProviderError:
    """Map an SDK exception onto overload (retryable) or permanent failure."""

    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    message = str(exc)
    lowered = message.lower()
    if status in OVERLOAD_STATUS_CODES or any(
        marker in lowered for marker in OVERLOAD_MESSAGE_MARKERS
    ):
        return TranslationServiceOverloaded(f"{service} is rate limiting requests: {message}")
    return TranslationProviderError(f"{service} request failed: {message}")


class TranslationProvider(ABC):
    """Abstract adapter for translation providers."""

    name = "provider"

    @abstractmethod
    def translate(
        self,
        texts: Sequence[str],
        *,
        source_language: str | None,
        target_language: str,
        model: str | None = None,
    ) -> List[str]:
        """Translate ``texts`` and return results in the same order."""


class EchoTranslationProvider(TranslationProvider):
    """A provider that returns the original text (useful for testing)."""

    name = "echo"

    def translate(
        self,
        texts: Sequence[str],
        *,
        source_language: str | None,
        target_language: str,
        model: str | None = None,
    ) -> List[str]:
        return list(texts)


class DeepLTranslationProvider(TranslationProvider):
    """Translation provider backed by the DeepL API."""

    name = "deepl"

    def __init__(
        self,
        *,
        auth_key: str | None,
        glossary_id: str | None = None,
        debug: bool = False,
    ) -> None:
        if not auth_key:
            raise TranslationProviderConfigurationError(
                "DeepL configuration missing. Set DEEPL_AUTH_KEY or choose a "
                "different provider."
            )
        try:
            import deepl  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "DeepL Python SDK not installed. Install with `pip install deepl`."
            ) from exc

        self._deepl = deepl
        self._client = deepl.Translator(auth_key)
        self.glossary_id = glossary_id or None
        self.debug = debug
        if self.glossary_id:
            logger.info("Using DeepL glossary %s.", self.glossary_id)

    def translate(
        self,
        texts: Sequence[str],
        *,
        source_language: str | None,
        target_language: str,
        model: str | None = None,
    ) -> List[str]:
        if not texts:
            return []

        options: Dict[str, Any] = {
            "source_lang": _deepl_source_code(source_language),
            "target_lang": _deepl_target_code(target_language),
        }
        if self.glossary_id:
            options["glossary"] = self.glossary_id
        if self.debug:
            logger.debug("deepl.request %s", json.dumps({"texts": list(texts), **options}, ensure_ascii=False))

        try:
            results = self._client.translate_text(list(texts), **options)
        except self._deepl.DeepLException as exc:
            too_many = getattr(self._deepl, "TooManyRequestsException", None)
            if too_many is not None and isinstance(exc, too_many):
                raise TranslationServiceOverloaded(
                    f"DeepL is rate limiting requests: {exc}"
                ) from exc
            raise _classify_failure(exc, service="DeepL") from exc

        if not isinstance(results, list):
            results = [results]
        translated = [result.text for result in results]
        if self.debug:
            logger.debug("deepl.response %s", json.dumps(translated, ensure_ascii=False))
        return translated


def _deepl_source_code(language: str | None) -> str | None:
    if not language:
        return None
    return language.strip().split("-", 1)[0].upper()


def _deepl_target_code(language: str) -> str:
    code = language.strip().upper()
    # DeepL requires a regional variant for these targets.
    return {"EN": "EN-US", "PT": "PT-BR"}.get(code, code)


SYSTEM_PROMPT = (
    "You translate labels taken from software design diagrams. "
    "You receive JSON with a target_language, an optional source_language and "
    "a list of segments, each with an id and a text. Translate every text into "
    "the target language. Keep labels short; keep identifiers, numbers and "
    "punctuation as they are; never merge or split segments. "
    'Answer with JSON only, shaped as {"translations": [{"id": "...", "translated": "..."}]}, '
    "without commentary or markdown fences."
)

_CODE_FENCE = re.compile(r"^```[^\n]*\n(?P<body>.*?)\n?```$", re.DOTALL)


def parse_translation_payload(raw: str) -> Dict[str, str]:
    """Read the model's JSON answer into an ``id -> translation`` mapping."""

    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group("body").strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TranslationProviderError(f"Translation provider returned invalid JSON: {exc}") from exc

    items = payload.get("translations") if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        raise TranslationProviderError("Translation provider response has no translations list.")

    mapping: Dict[str, str] = {}
    for item in items:
        segment_id = item.get("id") if isinstance(item, dict) else None
        translated = item.get("translated") if isinstance(item, dict) else None
        if not isinstance(segment_id, str) or not isinstance(translated, str):
            raise TranslationProviderError(f"Malformed translation entry: {item!r}")
        mapping[segment_id] = translated
    return mapping


class OpenAITranslationProvider(TranslationProvider):
    """Batch translation through the OpenAI Responses API (or Azure OpenAI).

    Texts are sent as ``t0..tN`` segments in one JSON request; the answer is
    mapped back by id so the model cannot reorder results.
    """

    name = "openai"
    DEFAULT_MODEL = "gpt-5-mini"

    def __init__(
        self,
        *,
        provider_kind: str = "openai",
        api_key: str | None = None,
        azure_endpoint: str | None = None,
        azure_api_version: str | None = None,
        azure_deployment: str | None = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        self.provider_kind = provider_kind
        self._credentials = {
            "api_key": api_key,
            "azure_endpoint": azure_endpoint,
            "api_version": azure_api_version,
            "deployment": azure_deployment,
        }
        self._client, self._default_model = self._build_client()

    def _build_client(self) -> tuple[Any, str]:
        credentials = self._credentials
        if self.provider_kind == "azure_openai":
            required = {
                "AZURE_OPENAI_API_KEY": credentials["api_key"],
                "AZURE_OPENAI_ENDPOINT": credentials["azure_endpoint"],
                "AZURE_OPENAI_API_VERSION": credentials["api_version"],
                "AZURE_OPENAI_DEPLOYMENT_NAME": credentials["deployment"],
            }
        else:
            required = {"OPENAI_API_KEY": credentials["api_key"]}
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise TranslationProviderConfigurationError(
                f"{self.provider_kind} configuration incomplete. Please set: {', '.join(missing)}."
            )

        try:
            import openai  # type: ignore
        except ImportError as exc:  # pragma: no cover - import guard
            raise TranslationProviderConfigurationError(
                "OpenAI Python SDK not installed. Install with `pip install openai`."
            ) from exc

        if self.provider_kind == "azure_openai":
            client = openai.AzureOpenAI(
                api_key=credentials["api_key"],
                api_version=credentials["api_version"],
                azure_endpoint=credentials["azure_endpoint"],
            )
            return client, credentials["deployment"]
        return openai.OpenAI(api_key=credentials["api_key"]), self.DEFAULT_MODEL

    def translate(
        self,
        texts: Sequence[str],
        *,
        source_language: str | None,
        target_language: str,
        model: str | None = None,
    ) -> List[str]:
        if not texts:
            return []

        ids = [f"t{index}" for index in range(len(texts))]
        request = {
            "target_language": target_language,
            "source_language": source_language,
            "segments": [{"id": text_id, "text": text} for text_id, text in zip(ids, texts)],
        }
        self._log_debug("openai.request", request)
        raw = self._request(json.dumps(request, ensure_ascii=False), model or self._default_model)
        self._log_debug("openai.response", raw)

        mapping = parse_translation_payload(raw)
        missing = [text_id for text_id in ids if text_id not in mapping]
        if missing:
            raise TranslationProviderError(
                "Translation output missing expected entries: " + ", ".join(missing)
            )
        return [mapping[text_id] for text_id in ids]

    def _request(self, user_text: str, model: str) -> str:
        """Send one request and return the model's raw text answer."""

        try:
            response = self._client.responses.create(
                model=model,
                input=[
                    {"role": "system", "content": [{"type": "input_text", "text": SYSTEM_PROMPT}]},
                    {"role": "user", "content": [{"type": "input_text", "text": user_text}]},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise _classify_failure(exc, service="OpenAI") from exc

        for item in getattr(response, "output", None) or []:
            for part in getattr(item, "content", None) or []:
                text = getattr(part, "text", None)
                text = getattr(text, "value", text)
                if text:
                    return str(text)
        if getattr(response, "output_text", None):
            return str(response.output_text)
        raise TranslationProviderError("Translation provider response empty or unrecognised.")

    def _log_debug(self, label: str, payload: Any) -> None:
        if not self.debug:
            return
        if not isinstance(payload, str):
            payload = json.dumps(payload, ensure_ascii=False, indent=2)
        logger.debug("%s:\n%s", label, payload)


class LegacyOpenAITranslationProvider(OpenAITranslationProvider):
    """Same request through the Chat Completions API, for older deployments."""

    name = "legacy_openai"

    def _request(self, user_text: str, model: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=0,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_text},
                ],
            )
        except Exception as exc:  # pragma: no cover - network call
            raise _classify_failure(exc, service="OpenAI") from exc

        for choice in getattr(response, "choices", None) or []:
            content = getattr(getattr(choice, "message", None), "content", None)
            if content:
                return str(content)
        raise TranslationProviderError("Translation provider response empty or unrecognised.")


PROVIDER_SYNONYMS = {
    "openai": "openai",
    "gpt": "openai",
    "azure_openai": "azure_openai",
    "azure-openai": "azure_openai",
    "azure_open_ai": "azure_openai",
    "azureopenai": "azure_openai",
    "legacy_openai": "legacy_openai",
    "legacy-openai": "legacy_openai",
    "openai-legacy": "legacy_openai",
    "chat": "legacy_openai",
    "deepl": "deepl",
    "echo": "echo",
    "noop": "echo",
    "mock": "echo",
}


def normalise_provider_name(name: str | None, default: str = "deepl") -> str:
    normalized = (name or default).strip().lower()
    try:
        return PROVIDER_SYNONYMS[normalized]
    except KeyError:
        raise TranslationProviderConfigurationError(
            f"Unknown translation provider '{name}'."
        ) from None


def build_provider(
    name: str | None,
    *,
    settings: Any = None,
    debug: bool = False,
) -> TranslationProvider:
    """Factory to create providers by name.

    ``settings`` is any object exposing the configuration attributes
    (normally :class:`interlinear.configuration.InterlinearConfig`).
    """

    normalized = normalise_provider_name(name)
    if normalized == "echo":
        return EchoTranslationProvider()
    if normalized == "deepl":
        return DeepLTranslationProvider(
            auth_key=getattr(settings, "DEEPL_AUTH_KEY", None),
            glossary_id=getattr(settings, "DEEPL_GLOSSARY_ID", None),
            debug=debug,
        )
    if normalized == "azure_openai":
        return OpenAITranslationProvider(
            provider_kind="azure_openai",
            api_key=getattr(settings, "AZURE_OPENAI_API_KEY", None),
            azure_endpoint=getattr(settings, "AZURE_OPENAI_ENDPOINT", None),
            azure_api_version=getattr(settings, "AZURE_OPENAI_API_VERSION", None),
            azure_deployment=getattr(settings, "AZURE_OPENAI_DEPLOYMENT_NAME", None),
            debug=debug,
        )
    provider_cls = (
        LegacyOpenAITranslationProvider
        if normalized == "legacy_openai"
        else OpenAITranslationProvider
    )
    return provider_cls(
        api_key=getattr(settings, "OPENAI_API_KEY", None),
        debug=debug,
    )
