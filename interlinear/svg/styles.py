"""Document-wide presentation rules for the translation overlay."""

from __future__ import annotations

import logging
import re

from lxml import etree

from .loader import local_name, make_element

logger = logging.getLogger(__name__)

OVERLAY_STYLE_ID = "interlinear-overlay"

OVERLAY_CSS = """
.il-text-wrapper { cursor: pointer; }
.il-translated-text {
  opacity: 0;
  pointer-events: none;
  transition: opacity 0.3s ease;
}
.il-text-wrapper:hover .il-original-text { opacity: 0; }
.il-text-wrapper:hover .il-translated-text {
  opacity: 1;
  fill: #2563eb;
  font-weight: bold;
}
.il-wrapper {
  position: relative;
  display: inline-block;
  cursor: pointer;
}
.il-wrapper .il-overlay {
  position: absolute;
  top: -4px;
  left: -2px;
  width: calc(100% + 6px);
  height: calc(100% + 8px);
  display: flex;
  align-items: center;
  justify-content: center;
  line-height: 1.3;
  background-color: rgba(37, 99, 235, 0.95);
  color: white;
  font-weight: bold;
  opacity: 0;
  pointer-events: none;
  transition: opacity 0.3s ease;
  z-index: 1000;
}
.il-wrapper:hover .il-overlay { opacity: 1; }
"""

_FONT_SIZE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(px|pt)\s*$")


def ensure_overlay_styles(root: etree._Element) -> bool:
    """Insert the overlay ``<style>`` once; return True if it was added."""

    for element in root.iter():
        if element.get("id") == OVERLAY_STYLE_ID:
            return False

    defs = next((child for child in root if local_name(child) == "defs"), None)
    if defs is None:
        defs = make_element("defs", root)
        root.insert(0, defs)
    style = make_element("style", root, type="text/css", id=OVERLAY_STYLE_ID)
    style.text = etree.CDATA(OVERLAY_CSS)
    defs.append(style)
    logger.debug("Added overlay stylesheet.")
    return True


def reduce_font_size(font_size: str) -> str:
    """Shrink a px/pt size for the overlay: 2 from 15 up, 1 in between, none at 10 or below.

    For ``pt`` the untouched range is strictly below 10. Other units are
    returned unchanged.
    """

    match = _FONT_SIZE.match(font_size)
    if not match:
        return font_size
    value = float(match.group(1))
    unit = match.group(2)
    if value >= 15:
        reduce_by = 2
    elif (value <= 10) if unit == "px" else (value < 10):
        reduce_by = 0
    else:
        reduce_by = 1
    return f"{max(1.0, value - reduce_by):g}{unit}"


def font_size_from_style(style: str | None) -> str:
    for declaration in (style or "").split(";"):
        name, _, value = declaration.partition(":")
        if name.strip() == "font-size" and value.strip():
            return value.strip()
    return ""


def remove_pre_wrap(style: str) -> str:
    declarations = [
        declaration.strip()
        for declaration in style.split(";")
        if declaration.strip()
        and declaration.replace(" ", "").lower() != "white-space:pre-wrap"
    ]
    return "; ".join(declarations)
