"""High-level orchestration for document translation."""

from __future__ import annotations

import logging
import math
import pathlib
import shutil
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, ContextManager, Generic, List, Optional, Sequence, TypeVar

from .cache import MetadataCache
from .client import TranslationClient
from .consolidation import consolidate, propagate, representatives
from .errors import (
    ApplicationError,
    ExtractionError,
    InterlinearError,
    OverwriteRefusedError,
    PersistenceError,
    PipelineCancelled,
    TranslationError,
)
from .policy import CancellationToken
from .structures import DocumentMetadata, TextUnit, TraversalReport

logger = logging.getLogger(__name__)

HandleT = TypeVar("HandleT")
ProgressSink = Callable[[str, int], None]

DEFAULT_CHUNK_SIZE = 50
DEFAULT_CHUNK_PAUSE = 0.5


class DocumentFormat(ABC, Generic[HandleT]):
    """Format-specific document access used by :class:`TranslationPipeline`.

    ``open`` returns a context manager so the handle is released on every
    exit path. ``apply`` works on a freshly opened handle and must locate
    nodes by the same identifiers ``extract`` produced.
    """

    name = "document"

    @abstractmethod
    def open(self, path: pathlib.Path) -> ContextManager[HandleT]:
        """Open ``path`` and yield a handle."""

    @abstractmethod
    def extract(self, handle: HandleT) -> List[TextUnit]:
        """Return the translatable units in document order."""

    @abstractmethod
    def apply(self, handle: HandleT, units: Sequence[TextUnit]) -> TraversalReport:
        """Write translations into the document behind ``handle``."""

    @abstractmethod
    def save(self, handle: HandleT, destination: pathlib.Path) -> None:
        """Persist the (modified) document to ``destination``."""


class ProgressReporter:
    """Best-effort, monotonic progress delivery."""

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self.sink = sink
        self.percent = 0

    def report(self, message: str, percent: int) -> None:
        self.percent = max(self.percent, min(100, int(percent)))
        logger.debug("[%3d%%] %s", self.percent, message)
        if self.sink is None:
            return
        try:
            self.sink(message, self.percent)
        except Exception as exc:
            logger.warning("Progress notification failed: %s", exc)


@dataclass
class PipelineSummary:
    """Report returned after processing a document."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    document_type: str
    provider_name: str
    model: str | None
    source_language: str | None
    target_language: str
    extracted_units: int = 0
    duplicate_units: int = 0
    reused_units: int = 0
    translated_units: int = 0
    applied_units: int = 0
    skipped_units: int = 0
    miss_count: int = 0
    warnings: int = 0
    failures: int = 0
    chunk_calls: int = 0
    copied_verbatim: bool = False
    elapsed_seconds: float = 0.0
    persistence_error: str | None = None
    miss_samples: List[str] = field(default_factory=list)


class TranslationPipeline(Generic[HandleT]):
    """Coordinates extraction, cache reuse, translation, and application."""

    def __init__(
        self,
        document_format: DocumentFormat[HandleT],
        client: TranslationClient,
        *,
        cache: MetadataCache | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_pause: float = DEFAULT_CHUNK_PAUSE,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1.")
        self.document_format = document_format
        self.client = client
        self.cache = cache or MetadataCache()
        self.chunk_size = chunk_size
        self.chunk_pause = chunk_pause
        self.cancel_token = client.cancel_token

    def run(
        self,
        input_path: pathlib.Path,
        output_path: pathlib.Path,
        progress: ProgressSink | None = None,
    ) -> PipelineSummary:
        start_time = time.monotonic()
        reporter = ProgressReporter(progress)
        summary = PipelineSummary(
            input_path=input_path,
            output_path=output_path,
            document_type=self.document_format.name,
            provider_name=self.client.provider.name,
            model=self.client.model,
            source_language=self.client.source_language,
            target_language=self.client.target_language,
        )

        self.cancel_token.raise_if_cancelled()
        reporter.report("Extracting text", 10)
        units = self._extract(input_path)
        summary.extracted_units = len(units)

        if not units:
            logger.info("No translatable text in %s; copying it unchanged.", input_path)
            shutil.copyfile(input_path, output_path)
            summary.copied_verbatim = True
            summary.elapsed_seconds = time.monotonic() - start_time
            reporter.report("Nothing to translate", 100)
            return summary

        self.cancel_token.raise_if_cancelled()
        reporter.report("Loading translation cache", 20)
        metadata = self.cache.load(input_path)
        fingerprint = self.cache.fingerprint(input_path)
        if metadata.content_fingerprint and metadata.content_fingerprint != fingerprint:
            logger.info("%s changed since the last run; reusing unchanged texts only.", input_path.name)

        summary.duplicate_units = consolidate(units)
        backlog: List[TextUnit] = []
        for unit in representatives(units):
            cached = metadata.lookup(unit)
            if cached is None:
                backlog.append(unit)
            else:
                unit.translated_text = cached
                summary.reused_units += 1
        logger.info(
            "%s: %d unit(s), %d duplicate(s), %d cached, %d to translate.",
            input_path.name,
            len(units),
            summary.duplicate_units,
            summary.reused_units,
            len(backlog),
        )

        try:
            self._translate_backlog(backlog, reporter, summary)
        except (TranslationError, PipelineCancelled):
            propagate(units)
            try:
                self._persist(input_path, metadata, units, fingerprint)
            except PersistenceError as exc:
                logger.warning("Could not keep partial translations: %s", exc)
            raise

        propagate(units)
        reporter.report("Saving translation cache", 85)
        try:
            self._persist(input_path, metadata, units, fingerprint)
        except PersistenceError as exc:
            logger.warning("%s", exc)
            summary.persistence_error = str(exc)

        self.cancel_token.raise_if_cancelled()
        reporter.report("Applying translations", 90)
        report = self._apply(input_path, output_path, units)
        summary.applied_units = report.applied
        summary.skipped_units = report.already_translated
        summary.miss_count = report.miss_count
        summary.miss_samples = list(report.miss_samples)
        summary.warnings = report.warnings
        summary.failures = report.failures

        summary.elapsed_seconds = time.monotonic() - start_time
        reporter.report("Done", 100)
        return summary

    def _extract(self, input_path: pathlib.Path) -> List[TextUnit]:
        try:
            with self.document_format.open(input_path) as handle:
                return self.document_format.extract(handle)
        except (ExtractionError, PipelineCancelled):
            raise
        except Exception as exc:
            raise ExtractionError(f"Could not read {input_path}: {exc}") from exc

    def _translate_backlog(
        self,
        backlog: List[TextUnit],
        reporter: ProgressReporter,
        summary: PipelineSummary,
    ) -> None:
        total_chunks = math.ceil(len(backlog) / self.chunk_size)
        for index in range(total_chunks):
            self.cancel_token.raise_if_cancelled()
            if index and self.chunk_pause > 0:
                self.cancel_token.wait(self.chunk_pause)
                self.cancel_token.raise_if_cancelled()

            chunk = backlog[index * self.chunk_size : (index + 1) * self.chunk_size]
            results = self.client.translate([unit.original_text for unit in chunk])
            summary.chunk_calls += 1
            for unit, translated in zip(chunk, results):
                unit.translated_text = translated
            summary.translated_units += len(chunk)

            reporter.report(
                f"Translated chunk {index + 1} of {total_chunks}",
                20 + int(60 * (index + 1) / total_chunks),
            )

    def _persist(
        self,
        input_path: pathlib.Path,
        metadata: DocumentMetadata,
        units: List[TextUnit],
        fingerprint: str,
    ) -> None:
        metadata.rebuild(units)
        self.cache.stamp(metadata, fingerprint)
        self.cache.save(input_path, metadata)

    def _apply(
        self,
        input_path: pathlib.Path,
        output_path: pathlib.Path,
        units: List[TextUnit],
    ) -> TraversalReport:
        try:
            with self.document_format.open(input_path) as handle:
                report = self.document_format.apply(handle, units)
                self.document_format.save(handle, output_path)
        except (ApplicationError, PipelineCancelled):
            raise
        except Exception as exc:
            raise ApplicationError(f"Could not write {output_path}: {exc}") from exc
        report.log_misses(logger, input_path.name)
        return report


@dataclass
class BatchJob:
    input_path: pathlib.Path
    output_path: pathlib.Path


@dataclass
class BatchResult:
    job: BatchJob
    summary: Optional[PipelineSummary] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_batch(
    jobs: Sequence[BatchJob],
    pipeline_factory: Callable[[BatchJob], TranslationPipeline],
    *,
    workers: int = 4,
    progress_factory: Callable[[BatchJob], ProgressSink | None] | None = None,
    cancel_token: CancellationToken | None = None,
) -> List[BatchResult]:
    """Run one independent pipeline per job on a thread pool.

    ``pipeline_factory`` must build a fresh pipeline (and provider) per job.
    Results are returned in job order; a failing job does not stop the others.
    On KeyboardInterrupt ``cancel_token`` is cancelled so running pipelines
    stop at their next chunk boundary before the interrupt propagates.
    """

    def _run(job: BatchJob) -> BatchResult:
        try:
            pipeline = pipeline_factory(job)
            sink = progress_factory(job) if progress_factory else None
            return BatchResult(job=job, summary=pipeline.run(job.input_path, job.output_path, sink))
        except InterlinearError as exc:
            logger.error("%s failed: %s", job.input_path, exc)
            return BatchResult(job=job, error=exc)
        except OSError as exc:
            logger.error("%s failed: %s", job.input_path, exc)
            return BatchResult(job=job, error=exc)
        except Exception as exc:
            logger.exception("%s failed unexpectedly", job.input_path)
            return BatchResult(job=job, error=exc)

    if not jobs:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(jobs)))) as executor:
        try:
            return list(executor.map(_run, jobs))
        except KeyboardInterrupt:
            if cancel_token is not None:
                cancel_token.cancel("Translation interrupted by user.")
            raise


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(f"Input file not found: {input_path}")
    if not input_path.is_file():
        raise InterlinearError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            f"{output_path} already exists. Rename it or pass --force to overwrite."
        )
