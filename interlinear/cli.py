"""Command line interface for the Interlinear translator."""

from __future__ import annotations

import argparse
import logging
import pathlib
import re
import sys
from typing import Any, Iterable, List, Optional

from .client import TranslationClient
from .configuration import get_settings, validate_provider_settings
from .detection import check_language_pair
from .documents import detect_format
from .errors import (
    InterlinearError,
    PipelineCancelled,
    TranslationProviderConfigurationError,
    UnsupportedLanguagePairError,
)
from .pipeline import (
    DEFAULT_CHUNK_PAUSE,
    DEFAULT_CHUNK_SIZE,
    BatchJob,
    PipelineSummary,
    TranslationPipeline,
    run_batch,
    validate_paths,
)
from .policy import CancellationToken, RetryPolicy
from .providers import build_provider, normalise_provider_name

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="interlinear",
        description=(
            "Add translations next to the original text of diagram projects (.dgm) "
            "and SVG drawings, reusing earlier translations."
        ),
    )
    parser.add_argument(
        "input_files",
        nargs="+",
        help="Path(s) to the .dgm or .svg files to translate.",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path (single input only). Defaults to appending the target language code.",
    )
    parser.add_argument(
        "--output-dir",
        help="Directory for the translated files.",
    )
    parser.add_argument(
        "-s",
        "--source-language",
        help="Source language code (default: ja).",
    )
    parser.add_argument(
        "-t",
        "--target-language",
        help="Destination language code (default: ko).",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier (default: deepl).",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or engine identifier.",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        help=f"Texts per translation request (default: {DEFAULT_CHUNK_SIZE}).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Documents translated in parallel (default: 4).",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def sanitise_language_for_filename(language: str) -> str:
    """Generate a filesystem-friendly suffix from a language descriptor."""

    collapsed = re.sub(r"\s+", "-", language.strip())
    ascii_only = collapsed.encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"[^A-Za-z0-9\-]+", "", ascii_only)
    return cleaned or "translated"


def derive_output_path(
    input_path: pathlib.Path,
    language: str,
    output_dir: pathlib.Path | None = None,
) -> pathlib.Path:
    suffix = input_path.suffix
    stem = input_path.stem
    addition = sanitise_language_for_filename(language)
    candidate = f"{stem}_{addition}{suffix}"
    return (output_dir or input_path.parent) / candidate


def execute_translation(
    *,
    input_files: List[str],
    output_file: str | None,
    output_dir: str | None,
    source_language: str,
    target_language: str,
    provider: str,
    model: str | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_pause: float = DEFAULT_CHUNK_PAUSE,
    retry_policy: RetryPolicy | None = None,
    workers: int = 4,
    force_overwrite: bool = False,
    provider_debug: bool = False,
    settings: Any = None,
    cancel_token: CancellationToken | None = None,
) -> tuple[int, List[PipelineSummary], List[str]]:
    """Run one pipeline per input; return the exit code, summaries, and messages."""

    if output_file and len(input_files) > 1:
        return 1, [], ["--output can only be used with a single input file."]

    try:
        check_language_pair(source_language, target_language)
    except UnsupportedLanguagePairError as exc:
        return 1, [], [str(exc)]

    directory = pathlib.Path(output_dir).expanduser().resolve() if output_dir else None
    jobs: List[BatchJob] = []
    messages: List[str] = []
    for input_file in input_files:
        input_path = pathlib.Path(input_file).expanduser().resolve()
        output_path = (
            pathlib.Path(output_file).expanduser().resolve()
            if output_file
            else derive_output_path(input_path, target_language, directory)
        )
        try:
            validate_paths(input_path, output_path, force_overwrite=force_overwrite)
        except (FileNotFoundError, InterlinearError) as exc:
            messages.append(str(exc))
            continue
        output_path.parent.mkdir(parents=True, exist_ok=True)
        jobs.append(BatchJob(input_path=input_path, output_path=output_path))

    if messages:
        return 1, [], messages

    token = cancel_token or CancellationToken()
    policy = retry_policy or RetryPolicy()

    def pipeline_factory(job: BatchJob) -> TranslationPipeline:
        document_format = detect_format(job.input_path, source_language, target_language)
        client = TranslationClient(
            build_provider(provider, settings=settings, debug=provider_debug),
            source_language=source_language,
            target_language=target_language,
            model=model,
            retry_policy=policy,
            cancel_token=token,
        )
        return TranslationPipeline(
            document_format,
            client,
            chunk_size=chunk_size,
            chunk_pause=chunk_pause,
        )

    def progress_factory(job: BatchJob):
        name = job.input_path.name
        return lambda message, percent: logger.info("%s [%3d%%] %s", name, percent, message)

    try:
        results = run_batch(
            jobs,
            pipeline_factory,
            workers=workers,
            progress_factory=progress_factory,
            cancel_token=token,
        )
    except KeyboardInterrupt:
        return 2, [], ["Translation interrupted by user."]

    summaries = [result.summary for result in results if result.summary is not None]
    exit_code = 0
    for result in results:
        if result.error is None:
            continue
        messages.append(f"{result.job.input_path.name}: {result.error}")
        if isinstance(result.error, PipelineCancelled):
            exit_code = 2
        elif exit_code == 0:
            exit_code = 1
    return exit_code, summaries, messages


def print_summary(summary: PipelineSummary) -> None:
    """Output a friendly report once processing completes."""

    print("\nTranslation complete.")
    print(f"  Input file:      {summary.input_path}")
    print(f"  Output file:     {summary.output_path}")
    print(f"  Document type:   {summary.document_type}")
    if summary.copied_verbatim:
        print("  No source-language text found; the input was copied unchanged.")
    else:
        print(
            "  Text units:      "
            f"{summary.extracted_units} found, {summary.duplicate_units} duplicates, "
            f"{summary.reused_units} from cache, {summary.translated_units} translated"
        )
        print(
            "  Applied:         "
            f"{summary.applied_units} ({summary.skipped_units} already translated, "
            f"{summary.miss_count} unmatched)"
        )
        print(f"  Requests:        {summary.chunk_calls}")
    print(
        f"  Provider:        {summary.provider_name}"
        + (f" ({summary.model})" if summary.model else "")
    )
    if summary.source_language:
        print(f"  Source language: {summary.source_language}")
    print(f"  Target language: {summary.target_language}")
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    notes = []
    if summary.warnings:
        notes.append(f"{summary.warnings} part(s) of the document could not be read.")
    if summary.failures:
        notes.append(f"{summary.failures} translation(s) could not be written.")
    if summary.persistence_error:
        notes.append(f"Translation cache not saved: {summary.persistence_error}")
    if notes:
        print("  Notes:")
        for message in notes:
            print(f"    - {message}")


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        settings = get_settings()
        provider = normalise_provider_name(args.provider or settings.TRANSLATION_PROVIDER)
        validate_provider_settings(settings, provider)
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return 1

    provider_debug = bool(args.debug_provider or settings.INTERLINEAR_PROVIDER_DEBUG)
    if provider_debug:
        logging.getLogger("interlinear.providers").setLevel(logging.DEBUG)

    chunk_size = args.chunk_size if args.chunk_size is not None else settings.INTERLINEAR_CHUNK_SIZE
    if chunk_size < 1:
        parser.error("--chunk-size must be at least 1")

    exit_code, summaries, messages = execute_translation(
        input_files=args.input_files,
        output_file=args.output,
        output_dir=args.output_dir,
        source_language=args.source_language or settings.INTERLINEAR_SOURCE_LANGUAGE,
        target_language=args.target_language or settings.INTERLINEAR_TARGET_LANGUAGE,
        provider=provider,
        model=args.model or settings.INTERLINEAR_MODEL,
        chunk_size=chunk_size,
        chunk_pause=settings.INTERLINEAR_CHUNK_PAUSE,
        retry_policy=RetryPolicy(
            max_attempts=settings.INTERLINEAR_MAX_ATTEMPTS,
            backoff_seconds=settings.INTERLINEAR_BACKOFF_SECONDS,
        ),
        workers=max(1, args.workers),
        force_overwrite=args.force,
        provider_debug=provider_debug,
        settings=settings,
    )

    for message in messages:
        print(message)
    for summary in summaries:
        print_summary(summary)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
