import json
from pathlib import Path
from typing import List, Tuple

import pytest

from conftest import KeyValueFormat, RecordingProvider, make_client
from interlinear.cache import MetadataCache
from interlinear.errors import (
    ApplicationError,
    ExtractionError,
    PersistenceError,
    PipelineCancelled,
    TranslationError,
)
from interlinear.pipeline import BatchJob, TranslationPipeline, run_batch
from interlinear.providers import TranslationProvider


def _pipeline(provider: RecordingProvider, **kwargs) -> TranslationPipeline:
    kwargs.setdefault("chunk_pause", 0)
    return TranslationPipeline(KeyValueFormat(), make_client(provider), **kwargs)


def _stored(path: Path) -> dict:
    return json.loads(MetadataCache().metadata_path(path).read_text(encoding="utf-8"))


def test_duplicates_are_translated_once(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文", "c": "顧客"})
    output = tmp_path / "doc_ko.json"
    provider = RecordingProvider()

    summary = _pipeline(provider).run(source, output)

    assert provider.requests == [["顧客", "注文"]]
    assert summary.extracted_units == 3
    assert summary.duplicate_units == 1
    assert summary.translated_units == 2
    assert summary.applied_units == 3
    assert summary.chunk_calls == 1
    assert set(_stored(source)["translations"]) == {"a", "b", "c"}
    result = json.loads(output.read_text(encoding="utf-8"))
    assert result["c"] == "顧客\n번역:顧客"


def test_second_run_reuses_cache(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文", "c": "Plain"})
    first_output = tmp_path / "first.json"
    second_output = tmp_path / "second.json"
    _pipeline(RecordingProvider()).run(source, first_output)

    provider = RecordingProvider()
    summary = _pipeline(provider).run(source, second_output)

    assert provider.requests == []
    assert summary.reused_units == 2
    assert summary.chunk_calls == 0
    assert second_output.read_bytes() == first_output.read_bytes()


def test_changed_text_is_retranslated(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文"})
    _pipeline(RecordingProvider()).run(source, tmp_path / "first.json")
    write_json("doc.json", {"a": "顧客", "b": "注文履歴"})

    provider = RecordingProvider()
    summary = _pipeline(provider).run(source, tmp_path / "second.json")

    assert provider.requests == [["注文履歴"]]
    assert summary.reused_units == 1


def test_backlog_is_chunked(write_json, tmp_path: Path) -> None:
    texts = {f"k{index}": f"項目{index}" for index in range(5)}
    source = write_json("doc.json", texts)
    provider = RecordingProvider()

    summary = _pipeline(provider, chunk_size=2).run(source, tmp_path / "out.json")

    assert [len(request) for request in provider.requests] == [2, 2, 1]
    assert summary.chunk_calls == 3


def test_document_without_source_text_is_copied(tmp_path: Path) -> None:
    source = tmp_path / "doc.json"
    source.write_bytes(b'{"a":   "Customer"}\n')
    output = tmp_path / "out.json"
    provider = RecordingProvider()

    summary = _pipeline(provider).run(source, output)

    assert summary.copied_verbatim
    assert provider.requests == []
    assert output.read_bytes() == source.read_bytes()
    assert not MetadataCache().metadata_path(source).exists()


def test_failed_chunk_keeps_earlier_translations(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文", "c": "商品", "d": "在庫"})
    output = tmp_path / "out.json"
    provider = RecordingProvider(fail_on_call=2)

    with pytest.raises(TranslationError):
        _pipeline(provider, chunk_size=2).run(source, output)

    assert not output.exists()
    assert set(_stored(source)["translations"]) == {"a", "b"}

    retry_provider = RecordingProvider()
    _pipeline(retry_provider, chunk_size=2).run(source, output)
    assert retry_provider.requests == [["商品", "在庫"]]


class _DroppedConnectionProvider(RecordingProvider):
    def translate(self, texts, **options):
        if self.requests:
            raise ConnectionResetError("connection reset by peer")
        return super().translate(texts, **options)


def test_unexpected_provider_error_keeps_earlier_translations(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文"})
    output = tmp_path / "out.json"

    with pytest.raises(TranslationError) as excinfo:
        _pipeline(_DroppedConnectionProvider(), chunk_size=1).run(source, output)

    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    assert not output.exists()
    assert set(_stored(source)["translations"]) == {"a"}


class _ReadOnlyCache(MetadataCache):
    def save(self, document, metadata):
        raise PersistenceError(f"Could not write metadata for {document.name}")


def test_persistence_error_does_not_abort(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客"})
    output = tmp_path / "out.json"

    summary = _pipeline(RecordingProvider(), cache=_ReadOnlyCache()).run(source, output)

    assert summary.persistence_error == "Could not write metadata for doc.json"
    assert summary.applied_units == 1
    assert output.exists()


def test_cancel_between_chunks(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客", "b": "注文", "c": "商品"})
    output = tmp_path / "out.json"
    provider = RecordingProvider()
    pipeline = _pipeline(provider, chunk_size=1)

    def _sink(message: str, percent: int) -> None:
        if message.startswith("Translated chunk 1"):
            pipeline.cancel_token.cancel("Stopped by test.")

    with pytest.raises(PipelineCancelled, match="Stopped by test"):
        pipeline.run(source, output, _sink)

    assert provider.requests == [["顧客"]]
    assert not output.exists()
    assert set(_stored(source)["translations"]) == {"a"}


def test_progress_is_monotonic_and_failures_are_tolerated(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {f"k{index}": f"項目{index}" for index in range(4)})
    seen: List[Tuple[str, int]] = []

    def _sink(message: str, percent: int) -> None:
        seen.append((message, percent))
        raise RuntimeError("display closed")

    summary = _pipeline(RecordingProvider(), chunk_size=2).run(source, tmp_path / "out.json", _sink)

    percents = [percent for _, percent in seen]
    assert summary.applied_units == 4
    assert percents == sorted(percents)
    assert percents[0] == 10
    assert percents[-1] == 100
    assert seen[-1][0] == "Done"


def test_unreadable_document_raises_extraction_error(tmp_path: Path) -> None:
    source = tmp_path / "doc.json"
    source.write_text("{broken", encoding="utf-8")
    document_format = KeyValueFormat()
    pipeline = TranslationPipeline(document_format, make_client(RecordingProvider()))

    with pytest.raises(ExtractionError):
        pipeline.run(source, tmp_path / "out.json")

    assert document_format.closed == document_format.opened == 1


class _BrokenApplyFormat(KeyValueFormat):
    def apply(self, handle, units):
        raise RuntimeError("node vanished")


def test_apply_failure_raises_application_error(write_json, tmp_path: Path) -> None:
    source = write_json("doc.json", {"a": "顧客"})
    pipeline = TranslationPipeline(
        _BrokenApplyFormat(), make_client(RecordingProvider()), chunk_pause=0
    )

    with pytest.raises(ApplicationError, match="node vanished"):
        pipeline.run(source, tmp_path / "out.json")

    assert set(_stored(source)["translations"]) == {"a"}


def test_chunk_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _pipeline(RecordingProvider(), chunk_size=0)


class _UnsupportedTargetProvider(TranslationProvider):
    name = "unsupported"

    def translate(self, texts, *, source_language, target_language, model=None):
        raise ValueError("target_lang not supported")


def test_batch_job_failure_does_not_stop_the_others(write_json, tmp_path: Path) -> None:
    jobs = [
        BatchJob(write_json("good.json", {"a": "顧客"}), tmp_path / "good_ko.json"),
        BatchJob(write_json("bad.json", {"a": "注文"}), tmp_path / "bad_ko.json"),
    ]

    def factory(job: BatchJob) -> TranslationPipeline:
        if job.input_path.name == "good.json":
            provider: TranslationProvider = RecordingProvider()
        else:
            provider = _UnsupportedTargetProvider()
        return TranslationPipeline(KeyValueFormat(), make_client(provider), chunk_pause=0)

    results = run_batch(jobs, factory, workers=2)

    assert [result.ok for result in results] == [True, False]
    assert results[0].summary.applied_units == 1
    assert isinstance(results[1].error, TranslationError)
    assert (tmp_path / "good_ko.json").exists()


def test_batch_keeps_errors_raised_outside_the_pipeline(write_json, tmp_path: Path) -> None:
    job = BatchJob(write_json("doc.json", {"a": "顧客"}), tmp_path / "doc_ko.json")

    def factory(job: BatchJob) -> TranslationPipeline:
        raise ValueError("no provider for this job")

    results = run_batch([job], factory)

    assert not results[0].ok
    assert isinstance(results[0].error, ValueError)
