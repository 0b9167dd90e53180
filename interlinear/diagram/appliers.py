"""Apply pass: append translations next to the original diagram text.

Mirrors :mod:`interlinear.diagram.extractors` node for node. A node is
located by re-deriving its identifier, and its text becomes
``original + separator + translation``. The separator follows the node's
line capability: single-line kinds get ``" / "``, everything else a line
break.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Sequence, Set

from ..detection import ScriptDetector
from ..structures import TextUnit, TraversalReport
from .extractors import MODEL_TEXT_TYPES, DiagramHandler, Walk, collect_diagrams, select_handler
from .identity import diagram_name_id, element_id, field_id, presentation_id, topic_id
from .model import (
    ActivityDiagram,
    ActivityNode,
    ClassElement,
    Comment,
    Diagram,
    Element,
    ERAttribute,
    ERDiagram,
    EREntity,
    MindMapDiagram,
    Package,
    Presentation,
    ProjectAccessor,
    SequenceDiagram,
    Topic,
)

logger = logging.getLogger(__name__)

SINGLE_LINE_SEPARATOR = " / "
MULTI_LINE_SEPARATOR = "\n"


def separator_for(node: Element) -> str:
    return SINGLE_LINE_SEPARATOR if node.single_line else MULTI_LINE_SEPARATOR


class ApplyContext(Walk):
    def __init__(
        self,
        units: Sequence[TextUnit],
        source: ScriptDetector,
        target: ScriptDetector,
    ) -> None:
        super().__init__()
        self.units: Dict[str, TextUnit] = {
            unit.unit_id: unit for unit in units if unit.translated_text is not None
        }
        self.source = source
        self.target = target

    def apply(
        self,
        unit_id: str,
        node: Element,
        current: str,
        setter: Callable[[str], None],
    ) -> None:
        if not current:
            return
        unit = self.units.get(unit_id)
        if self.target.contains(current):
            if unit is not None:
                self.report.record_already_translated()
            return
        if unit is None or unit.original_text != current:
            if self.source.contains(current):
                self.report.record_miss(unit_id)
            return
        try:
            setter(current + separator_for(node) + unit.translated_text)
        except ValueError as exc:
            self.report.record_failure(logger, unit_id, exc)
            return
        self.report.record_applied()


def _set(node: Element, attribute: str) -> Callable[[str], None]:
    return lambda value: setattr(node, attribute, value)


def apply_project(
    accessor: ProjectAccessor,
    units: Sequence[TextUnit],
    source: ScriptDetector,
    target: ScriptDetector,
) -> TraversalReport:
    ctx = ApplyContext(units, source, target)
    project = accessor.project
    with ctx.subtree("model tree"):
        _apply_model(project, ctx)

    for diagram in collect_diagrams(project, ctx):
        with ctx.subtree(f"diagram {diagram!r}"):
            ctx.apply(diagram_name_id(diagram), diagram, diagram.name, _set(diagram, "name"))
            handler = select_handler(APPLY_HANDLERS, diagram)
            if handler is not None:
                handler.run(diagram, ctx)
    return ctx.report


def _apply_model(element: Element, ctx: ApplyContext) -> None:
    location = f"{element.kind}:{element.id}"
    if isinstance(element, Comment):
        ctx.apply(field_id(element, "body"), element, element.body, _set(element, "body"))
        return
    if isinstance(element, MODEL_TEXT_TYPES):
        ctx.apply(element_id(element), element, element.name, _set(element, "name"))

    children: List[Element] = []
    if isinstance(element, Package):
        children = element.owned_elements
    elif isinstance(element, ClassElement):
        children = element.attributes + element.operations
    for child in children:
        with ctx.subtree(f"child of {location}"):
            _apply_model(child, ctx)


def _apply_presentations(diagram: Diagram, ctx: ApplyContext) -> None:
    for presentation in diagram.presentations:
        with ctx.subtree(f"presentation in diagram {diagram.id}"):
            _apply_presentation(presentation, ctx)


def _apply_presentation(presentation: Presentation, ctx: ApplyContext) -> None:
    if not presentation.has_own_label:
        return
    ctx.apply(
        presentation_id(presentation),
        presentation,
        presentation.label,
        _set(presentation, "label"),
    )


def _apply_er_attribute(attribute: ERAttribute, ctx: ApplyContext) -> None:
    ctx.apply(field_id(attribute, "logical"), attribute, attribute.logical_name, _set(attribute, "logical_name"))
    ctx.apply(field_id(attribute, "physical"), attribute, attribute.physical_name, _set(attribute, "physical_name"))


def apply_er(diagram: Diagram, ctx: ApplyContext) -> None:
    visited: Set[str] = set()
    for presentation in diagram.presentations:
        with ctx.subtree(f"ER presentation in diagram {diagram.id}"):
            entity = presentation.model
            if isinstance(entity, EREntity) and entity.id not in visited:
                visited.add(entity.id)
                _apply_er_attribute(entity, ctx)
                for attribute in entity.primary_keys + entity.non_primary_keys:
                    with ctx.subtree(f"attribute of entity {entity.id}"):
                        _apply_er_attribute(attribute, ctx)
            _apply_presentation(presentation, ctx)


def apply_sequence(diagram: SequenceDiagram, ctx: ApplyContext) -> None:
    interaction = diagram.interaction
    if interaction is not None:
        ctx.apply(element_id(interaction), interaction, interaction.name, _set(interaction, "name"))
        for lifeline in interaction.lifelines:
            with ctx.subtree(f"lifeline in diagram {diagram.id}"):
                ctx.apply(element_id(lifeline), lifeline, lifeline.name, _set(lifeline, "name"))
        for message in interaction.messages:
            with ctx.subtree(f"message in diagram {diagram.id}"):
                ctx.apply(field_id(message, "name"), message, message.name, _set(message, "name"))
                ctx.apply(field_id(message, "argument"), message, message.argument, _set(message, "argument"))
                ctx.apply(field_id(message, "return"), message, message.return_value, _set(message, "return_value"))
                ctx.apply(field_id(message, "guard"), message, message.guard, _set(message, "guard"))
    _apply_presentations(diagram, ctx)


def apply_activity(diagram: ActivityDiagram, ctx: ApplyContext) -> None:
    activity = diagram.activity
    if activity is not None:
        ctx.apply(element_id(activity), activity, activity.name, _set(activity, "name"))
        for node in activity.nodes:
            with ctx.subtree(f"activity node in diagram {diagram.id}"):
                if isinstance(node, ActivityNode) and node.is_control:
                    continue
                ctx.apply(element_id(node), node, node.name, _set(node, "name"))
        for flow in activity.flows:
            with ctx.subtree(f"flow in diagram {diagram.id}"):
                ctx.apply(element_id(flow), flow, flow.name, _set(flow, "name"))
    _apply_presentations(diagram, ctx)


def apply_mindmap(diagram: MindMapDiagram, ctx: ApplyContext) -> None:
    root = diagram.root
    if root is not None:
        _apply_topic(root, diagram, ("root",), ctx)
    for index, topic in enumerate(diagram.floating_topics):
        _apply_topic(topic, diagram, ("floating", index), ctx)


def _apply_topic(topic: Topic, diagram: Diagram, path: tuple, ctx: ApplyContext) -> None:
    with ctx.subtree(f"topic {'/'.join(map(str, path))} in diagram {diagram.id}"):
        ctx.apply(topic_id(topic, diagram, path), topic, topic.label, _set(topic, "label"))
        for index, child in enumerate(topic.children):
            _apply_topic(child, diagram, path + (index,), ctx)


def apply_generic(diagram: Diagram, ctx: ApplyContext) -> None:
    _apply_presentations(diagram, ctx)


APPLY_HANDLERS: List[DiagramHandler] = [
    DiagramHandler("er", 1, lambda diagram: isinstance(diagram, ERDiagram), apply_er),
    DiagramHandler("sequence", 2, lambda diagram: isinstance(diagram, SequenceDiagram), apply_sequence),
    DiagramHandler("activity", 3, lambda diagram: isinstance(diagram, ActivityDiagram), apply_activity),
    DiagramHandler("mindmap", 4, lambda diagram: isinstance(diagram, MindMapDiagram), apply_mindmap),
    DiagramHandler("generic", 100, lambda diagram: True, apply_generic),
]
