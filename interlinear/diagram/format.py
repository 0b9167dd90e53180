"""Pipeline adapter for diagram projects."""

from __future__ import annotations

import contextlib
import logging
import pathlib
from typing import Iterator, List, Sequence

from ..detection import detector_for
from ..errors import ExtractionError
from ..pipeline import DocumentFormat
from ..structures import TextUnit, TraversalReport
from .appliers import apply_project
from .extractors import extract_project
from .model import ProjectAccessor

logger = logging.getLogger(__name__)


class DiagramFormat(DocumentFormat[ProjectAccessor]):
    name = "diagram"

    def __init__(self, source_language: str, target_language: str) -> None:
        self.source = detector_for(source_language)
        self.target = detector_for(target_language)

    @contextlib.contextmanager
    def open(self, path: pathlib.Path) -> Iterator[ProjectAccessor]:
        accessor = ProjectAccessor()
        try:
            accessor.open(path)
        except (OSError, ValueError) as exc:
            raise ExtractionError(f"Could not open diagram project {path}: {exc}") from exc
        try:
            yield accessor
        finally:
            accessor.close()

    def extract(self, handle: ProjectAccessor) -> List[TextUnit]:
        ctx = extract_project(handle, self.source)
        if ctx.report.warnings:
            logger.warning(
                "%d part(s) of %s could not be read and were skipped.",
                ctx.report.warnings,
                handle.path,
            )
        return ctx.units

    def apply(self, handle: ProjectAccessor, units: Sequence[TextUnit]) -> TraversalReport:
        return apply_project(handle, units, self.source, self.target)

    def save(self, handle: ProjectAccessor, destination: pathlib.Path) -> None:
        handle.save_as(destination)
