"""Extraction pass over a diagram project.

The model tree is walked first, then every diagram. Each diagram is handled
by exactly one handler: the first entry of :data:`EXTRACT_HANDLERS` (ordered
by priority) whose ``supports`` accepts it.
"""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Set

from ..detection import ScriptDetector
from ..errors import StructuralAccessWarning
from ..structures import TextUnit, TraversalReport
from .identity import diagram_name_id, element_id, field_id, presentation_id, topic_id
from .model import (
    ActivityDiagram,
    ActivityNode,
    Attribute,
    ClassElement,
    Comment,
    Diagram,
    Element,
    ERAttribute,
    ERDiagram,
    EREntity,
    MindMapDiagram,
    Operation,
    Package,
    Presentation,
    ProjectAccessor,
    SequenceDiagram,
    Topic,
    UseCase,
)

logger = logging.getLogger(__name__)

# Model kinds whose name is translated during the model-tree walk.
MODEL_TEXT_TYPES = (Package, ClassElement, Attribute, Operation, UseCase)


class Walk:
    """Shared bookkeeping for one traversal of a project."""

    def __init__(self) -> None:
        self.report = TraversalReport()

    @contextlib.contextmanager
    def subtree(self, context: str) -> Iterator[None]:
        """Run a block; a structural failure inside it skips only that block."""

        try:
            yield
        except StructuralAccessWarning as exc:
            self.report.record_warning(logger, context, exc)


@dataclass(frozen=True)
class DiagramHandler:
    name: str
    priority: int
    supports: Callable[[Diagram], bool]
    run: Callable[[Diagram, Walk], None]


def select_handler(handlers: Sequence[DiagramHandler], diagram: Diagram) -> Optional[DiagramHandler]:
    for handler in sorted(handlers, key=lambda item: item.priority):
        if handler.supports(diagram):
            return handler
    return None


def collect_diagrams(package: Package, walk: Walk) -> List[Diagram]:
    """Diagrams owned by ``package`` and, recursively, by its sub-packages."""

    found: List[Diagram] = []
    with walk.subtree(f"diagrams of {package!r}"):
        found.extend(package.diagrams)
    with walk.subtree(f"packages of {package!r}"):
        for child in package.owned_elements:
            if isinstance(child, Package):
                found.extend(collect_diagrams(child, walk))
    return found


class ExtractContext(Walk):
    """Collects units whose text contains the source script, once per id."""

    def __init__(self, source: ScriptDetector) -> None:
        super().__init__()
        self.source = source
        self.units: List[TextUnit] = []
        self._seen: Set[str] = set()

    def add(
        self,
        unit_id: str,
        text: str,
        kind: str,
        location: str = "",
        source_group_id: Optional[str] = None,
    ) -> None:
        if not text or not self.source.contains(text):
            return
        if unit_id in self._seen:
            return
        self._seen.add(unit_id)
        self.units.append(
            TextUnit(
                unit_id=unit_id,
                original_text=text,
                kind=kind,
                location=location,
                source_group_id=source_group_id,
            )
        )


def extract_project(accessor: ProjectAccessor, source: ScriptDetector) -> ExtractContext:
    ctx = ExtractContext(source)
    project = accessor.project
    with ctx.subtree("model tree"):
        _extract_model(project, ctx)

    for diagram in collect_diagrams(project, ctx):
        with ctx.subtree(f"diagram {diagram!r}"):
            ctx.add(
                diagram_name_id(diagram),
                diagram.name,
                "diagram_name",
                location=f"diagram:{diagram.id}",
                source_group_id=diagram.id,
            )
            handler = select_handler(EXTRACT_HANDLERS, diagram)
            if handler is not None:
                handler.run(diagram, ctx)

    logger.debug(
        "Extracted %d unit(s) (%d structural warning(s)).",
        len(ctx.units),
        ctx.report.warnings,
    )
    return ctx


def _extract_model(element: Element, ctx: ExtractContext) -> None:
    location = f"{element.kind}:{element.id}"
    if isinstance(element, Comment):
        ctx.add(field_id(element, "body"), element.body, "comment_body", location)
        return
    if isinstance(element, MODEL_TEXT_TYPES):
        ctx.add(element_id(element), element.name, element.kind, location)

    children: List[Element] = []
    if isinstance(element, Package):
        children = element.owned_elements
    elif isinstance(element, ClassElement):
        children = element.attributes + element.operations
    for child in children:
        with ctx.subtree(f"child of {location}"):
            _extract_model(child, ctx)


def _extract_presentations(diagram: Diagram, ctx: ExtractContext) -> None:
    for presentation in diagram.presentations:
        with ctx.subtree(f"presentation in diagram {diagram.id}"):
            _extract_presentation(presentation, ctx)


def _extract_presentation(presentation: Presentation, ctx: ExtractContext) -> None:
    # Labels delegated to a model element are extracted with that element.
    if not presentation.has_own_label:
        return
    kind = "presentation_" + (presentation.type.lower() or "unknown")
    ctx.add(presentation_id(presentation), presentation.label, kind)


def _extract_er_attribute(attribute: ERAttribute, ctx: ExtractContext, kind: str) -> None:
    ctx.add(field_id(attribute, "logical"), attribute.logical_name, f"{kind}_logical")
    ctx.add(field_id(attribute, "physical"), attribute.physical_name, f"{kind}_physical")


def extract_er(diagram: Diagram, ctx: ExtractContext) -> None:
    visited: Set[str] = set()
    for presentation in diagram.presentations:
        with ctx.subtree(f"ER presentation in diagram {diagram.id}"):
            entity = presentation.model
            if isinstance(entity, EREntity) and entity.id not in visited:
                visited.add(entity.id)
                _extract_er_attribute(entity, ctx, "er_entity")
                for attribute in entity.primary_keys + entity.non_primary_keys:
                    with ctx.subtree(f"attribute of entity {entity.id}"):
                        _extract_er_attribute(attribute, ctx, "er_attribute")
            _extract_presentation(presentation, ctx)


def extract_sequence(diagram: SequenceDiagram, ctx: ExtractContext) -> None:
    interaction = diagram.interaction
    if interaction is not None:
        ctx.add(element_id(interaction), interaction.name, "sequence_interaction")
        for lifeline in interaction.lifelines:
            with ctx.subtree(f"lifeline in diagram {diagram.id}"):
                ctx.add(element_id(lifeline), lifeline.name, "sequence_lifeline")
        for message in interaction.messages:
            with ctx.subtree(f"message in diagram {diagram.id}"):
                ctx.add(field_id(message, "name"), message.name, "sequence_message_name")
                ctx.add(field_id(message, "argument"), message.argument, "sequence_message_argument")
                ctx.add(field_id(message, "return"), message.return_value, "sequence_message_return")
                ctx.add(field_id(message, "guard"), message.guard, "sequence_message_guard")
    _extract_presentations(diagram, ctx)


def extract_activity(diagram: ActivityDiagram, ctx: ExtractContext) -> None:
    activity = diagram.activity
    if activity is not None:
        ctx.add(element_id(activity), activity.name, "activity")
        for node in activity.nodes:
            with ctx.subtree(f"activity node in diagram {diagram.id}"):
                if isinstance(node, ActivityNode) and node.is_control:
                    continue
                ctx.add(element_id(node), node.name, "activity_node")
        for flow in activity.flows:
            with ctx.subtree(f"flow in diagram {diagram.id}"):
                ctx.add(element_id(flow), flow.name, "activity_flow")
    _extract_presentations(diagram, ctx)


def extract_mindmap(diagram: MindMapDiagram, ctx: ExtractContext) -> None:
    root = diagram.root
    if root is not None:
        _extract_topic(root, diagram, ("root",), ctx)
    for index, topic in enumerate(diagram.floating_topics):
        _extract_topic(topic, diagram, ("floating", index), ctx)


def _extract_topic(topic: Topic, diagram: Diagram, path: tuple, ctx: ExtractContext) -> None:
    with ctx.subtree(f"topic {'/'.join(map(str, path))} in diagram {diagram.id}"):
        ctx.add(topic_id(topic, diagram, path), topic.label, "mindmap_topic")
        for index, child in enumerate(topic.children):
            _extract_topic(child, diagram, path + (index,), ctx)


def extract_generic(diagram: Diagram, ctx: ExtractContext) -> None:
    _extract_presentations(diagram, ctx)


EXTRACT_HANDLERS: List[DiagramHandler] = [
    DiagramHandler("er", 1, lambda diagram: isinstance(diagram, ERDiagram), extract_er),
    DiagramHandler("sequence", 2, lambda diagram: isinstance(diagram, SequenceDiagram), extract_sequence),
    DiagramHandler("activity", 3, lambda diagram: isinstance(diagram, ActivityDiagram), extract_activity),
    DiagramHandler("mindmap", 4, lambda diagram: isinstance(diagram, MindMapDiagram), extract_mindmap),
    DiagramHandler("generic", 100, lambda diagram: True, extract_generic),
]
