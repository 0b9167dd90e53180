"""Non-destructive overlay rewrite for SVG text.

``<text>`` becomes::

    <g class="il-text-wrapper">
      <text class="il-original-text" ...>original</text>
      <text class="il-translated-text" ...>translation</text>
    </g>

and a foreignObject label span becomes::

    <div class="il-wrapper"><span class="... text-edit">original</span>
      <span class="il-overlay">translation</span></div>

The stylesheet in :mod:`interlinear.svg.styles` shows the original by
default and reveals the translation on hover.
"""

from __future__ import annotations

import logging
from typing import Dict, Sequence

from lxml import etree

from ..detection import ScriptDetector
from ..structures import TextUnit, TraversalReport
from .extractor import (
    HTML_OVERLAY_CLASS,
    HTML_WRAPPER_CLASS,
    ORIGINAL_TEXT_CLASS,
    TEXT_WRAPPER_CLASS,
    TRANSLATED_TEXT_CLASS,
    SvgTextNode,
    locate_nodes,
)
from .loader import add_class, make_element
from .styles import ensure_overlay_styles, font_size_from_style, reduce_font_size, remove_pre_wrap

logger = logging.getLogger(__name__)

# Presentation attributes shared by the original and the translated <text>.
SHARED_TEXT_ATTRIBUTES = (
    "x",
    "y",
    "dx",
    "dy",
    "font-size",
    "font-family",
    "font-weight",
    "fill",
    "text-anchor",
    "dominant-baseline",
    "transform",
    "style",
)


def apply_units(
    tree: etree._ElementTree,
    units: Sequence[TextUnit],
    source: ScriptDetector,
    target: ScriptDetector,
) -> TraversalReport:
    report = TraversalReport()
    translations: Dict[str, TextUnit] = {
        unit.unit_id: unit for unit in units if unit.translated_text is not None
    }

    # Ids depend on element paths, so resolve every node before rewriting.
    nodes = locate_nodes(tree)
    for node in nodes:
        if not node.text:
            continue
        unit = translations.get(node.unit_id)
        if node.wrapped or target.contains(node.text):
            if unit is not None:
                report.record_already_translated()
            continue
        if unit is None or unit.original_text != node.text:
            if source.contains(node.text):
                report.record_miss(node.unit_id)
            continue
        try:
            if node.kind == "svg_text":
                wrap_text_element(node, unit.translated_text)
            else:
                wrap_label_span(node, unit.translated_text)
        except ValueError as exc:
            report.record_failure(logger, node.unit_id, exc)
            continue
        report.record_applied()

    if report.applied:
        ensure_overlay_styles(tree.getroot())
    return report


def wrap_text_element(node: SvgTextNode, translation: str) -> None:
    element = node.element
    parent = element.getparent()
    if parent is None:
        raise ValueError("text element has no parent")

    group = make_element("g", element)
    group.set("class", TEXT_WRAPPER_CLASS)
    translated = make_element("text", element)
    translated.set("class", TRANSLATED_TEXT_CLASS)

    first_tspan = next(iter(element), None)
    for attribute in SHARED_TEXT_ATTRIBUTES:
        value = element.get(attribute)
        if value is None and attribute in ("x", "y") and first_tspan is not None:
            value = first_tspan.get(attribute)
        if value is not None:
            translated.set(attribute, value)
    translated.text = translation

    group.tail = element.tail
    element.tail = None
    parent.replace(element, group)
    add_class(element, ORIGINAL_TEXT_CLASS)
    group.append(element)
    group.append(translated)


def wrap_label_span(node: SvgTextNode, translation: str) -> None:
    span = node.element
    parent = span.getparent()
    if parent is None:
        raise ValueError("label span has no parent")

    grand_parent = parent.getparent()
    if grand_parent is not None and "pre-wrap" in (grand_parent.get("style") or ""):
        grand_parent.set("style", remove_pre_wrap(grand_parent.get("style") or ""))

    overlay = make_element("span", span)
    overlay.set("class", HTML_OVERLAY_CLASS)
    font_size = _inherited_font_size(span)
    if font_size:
        overlay.set("style", f"font-size: {reduce_font_size(font_size)};")
    overlay.text = translation

    wrapper = make_element("div", span)
    wrapper.set("class", HTML_WRAPPER_CLASS)
    wrapper.tail = span.tail
    span.tail = None
    parent.replace(span, wrapper)
    wrapper.append(span)
    wrapper.append(overlay)


def _inherited_font_size(element: etree._Element) -> str:
    """Font size from the element's style or one of its three nearest ancestors."""

    current = element
    for _ in range(4):
        if current is None:
            break
        size = font_size_from_style(current.get("style"))
        if size:
            return size
        current = current.getparent()
    return ""
