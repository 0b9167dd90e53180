"""Pipeline adapter for SVG documents."""

from __future__ import annotations

import contextlib
import pathlib
from typing import Iterator, List, Sequence

from lxml import etree

from ..detection import detector_for
from ..pipeline import DocumentFormat
from ..structures import TextUnit, TraversalReport
from .applier import apply_units
from .extractor import extract_units
from .loader import load_svg, save_svg


class SvgFormat(DocumentFormat[etree._ElementTree]):
    name = "svg"

    def __init__(self, source_language: str, target_language: str) -> None:
        self.source = detector_for(source_language)
        self.target = detector_for(target_language)

    @contextlib.contextmanager
    def open(self, path: pathlib.Path) -> Iterator[etree._ElementTree]:
        # The parsed tree holds no external resource; it is simply dropped.
        yield load_svg(path)

    def extract(self, handle: etree._ElementTree) -> List[TextUnit]:
        return extract_units(handle, self.source)

    def apply(self, handle: etree._ElementTree, units: Sequence[TextUnit]) -> TraversalReport:
        return apply_units(handle, units, self.source, self.target)

    def save(self, handle: etree._ElementTree, destination: pathlib.Path) -> None:
        save_svg(handle, destination)
