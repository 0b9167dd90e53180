"""Document format selection by file suffix."""

from __future__ import annotations

import pathlib
from typing import Callable, Dict

from .diagram.format import DiagramFormat
from .errors import UnsupportedFileTypeError
from .pipeline import DocumentFormat
from .svg.format import SvgFormat

FormatFactory = Callable[[str, str], DocumentFormat]

FORMATS: Dict[str, FormatFactory] = {
    ".svg": SvgFormat,
    ".dgm": DiagramFormat,
}


def detect_format(
    path: pathlib.Path,
    source_language: str,
    target_language: str,
) -> DocumentFormat:
    """Select an appropriate format adapter for the provided file."""

    factory = FORMATS.get(path.suffix.lower())
    if factory is None:
        supported = ", ".join(sorted(FORMATS))
        raise UnsupportedFileTypeError(
            f"This file type isn't supported ({path.suffix or 'no suffix'}). Use one of: {supported}."
        )
    return factory(source_language, target_language)
