import contextlib
import json
import pathlib
from typing import Iterator, List, Optional, Sequence

import pytest

from interlinear.client import TranslationClient
from interlinear.errors import TranslationProviderError
from interlinear.pipeline import DocumentFormat
from interlinear.policy import CancellationToken, RetryPolicy
from interlinear.providers import TranslationProvider
from interlinear.structures import TextUnit, TraversalReport


class RecordingProvider(TranslationProvider):
    """Prefixes every text and remembers each request."""

    name = "recording"

    def __init__(self, prefix: str = "번역:", fail_on_call: Optional[int] = None) -> None:
        self.prefix = prefix
        self.fail_on_call = fail_on_call
        self.requests: List[List[str]] = []

    def translate(self, texts, *, source_language, target_language, model=None):
        self.requests.append(list(texts))
        if self.fail_on_call is not None and len(self.requests) == self.fail_on_call:
            raise TranslationProviderError("service rejected the request")
        return [f"{self.prefix}{text}" for text in texts]

    @property
    def texts(self) -> List[str]:
        return [text for request in self.requests for text in request]


class KeyValueFormat(DocumentFormat[dict]):
    """Minimal format: a JSON object mapping node ids to text."""

    name = "keyvalue"

    def __init__(self) -> None:
        self.opened = 0
        self.closed = 0

    @contextlib.contextmanager
    def open(self, path: pathlib.Path) -> Iterator[dict]:
        self.opened += 1
        try:
            yield json.loads(path.read_text(encoding="utf-8"))
        finally:
            self.closed += 1

    def extract(self, handle: dict) -> List[TextUnit]:
        return [
            TextUnit(unit_id=key, original_text=value)
            for key, value in handle.items()
            if any("぀" <= char <= "ヿ" or "一" <= char <= "龯" for char in value)
        ]

    def apply(self, handle: dict, units: Sequence[TextUnit]) -> TraversalReport:
        report = TraversalReport()
        by_id = {unit.unit_id: unit for unit in units}
        for key, value in handle.items():
            unit = by_id.get(key)
            if unit is None or unit.translated_text is None:
                continue
            handle[key] = value + "\n" + unit.translated_text
            report.record_applied()
        return report

    def save(self, handle: dict, destination: pathlib.Path) -> None:
        destination.write_text(json.dumps(handle, ensure_ascii=False, sort_keys=True), encoding="utf-8")


def make_client(provider: TranslationProvider, **kwargs) -> TranslationClient:
    kwargs.setdefault("retry_policy", RetryPolicy(max_attempts=3, backoff_seconds=0))
    kwargs.setdefault("cancel_token", CancellationToken())
    return TranslationClient(provider, source_language="ja", target_language="ko", **kwargs)


@pytest.fixture
def write_json(tmp_path):
    def _write(name: str, payload: dict) -> pathlib.Path:
        path = tmp_path / name
        path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        return path

    return _write
