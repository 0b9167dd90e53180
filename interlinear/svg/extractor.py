"""Locating translatable text in SVG documents.

Two kinds of nodes carry text: ``<text>`` elements (with their ``<tspan>``
children) and HTML labels inside ``<foreignObject>``, where the label is the
first ``span`` whose class mentions ``text-edit``. Node ids are computed on
the untouched tree so both passes agree before anything is rewritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from lxml import etree

from ..detection import ScriptDetector
from ..diagram.identity import structural_hash
from ..structures import TextUnit
from .loader import SVG_NS, XHTML_NS, has_class, local_name, tags

logger = logging.getLogger(__name__)

ORIGINAL_TEXT_CLASS = "il-original-text"
TRANSLATED_TEXT_CLASS = "il-translated-text"
TEXT_WRAPPER_CLASS = "il-text-wrapper"
HTML_WRAPPER_CLASS = "il-wrapper"
HTML_OVERLAY_CLASS = "il-overlay"


@dataclass
class SvgTextNode:
    unit_id: str
    kind: str
    element: etree._Element
    text: str
    # Already rewritten by an earlier run.
    wrapped: bool = False


def text_content(element: etree._Element) -> str:
    """Direct text plus ``<tspan>`` text, stripped."""

    parts = [element.text or ""]
    for child in element:
        if local_name(child) == "tspan":
            parts.append("".join(child.itertext()))
        parts.append(child.tail or "")
    return "".join(parts).strip()


def label_span(foreign_object: etree._Element) -> Optional[etree._Element]:
    for span in foreign_object.iter(*tags("span", XHTML_NS)):
        if "text-edit" in (span.get("class") or ""):
            return span
    return None


def locate_nodes(tree: etree._ElementTree) -> List[SvgTextNode]:
    root = tree.getroot()
    nodes: List[SvgTextNode] = []

    for element in root.iter(*tags("text", SVG_NS)):
        if has_class(element, TRANSLATED_TEXT_CLASS):
            continue
        unit_id = element.get("id") or "text_" + structural_hash(
            tree.getpath(element), element.get("x"), element.get("y")
        )
        nodes.append(
            SvgTextNode(
                unit_id=unit_id,
                kind="svg_text",
                element=element,
                text=text_content(element),
                wrapped=has_class(element, ORIGINAL_TEXT_CLASS),
            )
        )

    for foreign_object in root.iter(*tags("foreignObject", SVG_NS)):
        span = label_span(foreign_object)
        if span is None:
            continue
        parent = foreign_object.getparent()
        group_id = parent.get("id") if parent is not None else None
        unit_id = group_id or "foreign_" + structural_hash(tree.getpath(span))
        wrapper = span.getparent()
        nodes.append(
            SvgTextNode(
                unit_id=unit_id,
                kind="svg_foreign_object",
                element=span,
                text="".join(span.itertext()).strip(),
                wrapped=wrapper is not None and has_class(wrapper, HTML_WRAPPER_CLASS),
            )
        )
    return nodes


def extract_units(tree: etree._ElementTree, source: ScriptDetector) -> List[TextUnit]:
    units: List[TextUnit] = []
    seen: Set[str] = set()
    for node in locate_nodes(tree):
        if node.wrapped or not node.text or not source.contains(node.text):
            continue
        if node.unit_id in seen:
            logger.debug("Duplicate SVG node id %s; keeping the first.", node.unit_id)
            continue
        seen.add(node.unit_id)
        units.append(
            TextUnit(
                unit_id=node.unit_id,
                original_text=node.text,
                kind=node.kind,
                location=tree.getpath(node.element),
            )
        )
    logger.info("Found %d SVG text node(s) to translate.", len(units))
    return units
