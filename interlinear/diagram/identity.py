"""Stable identifiers for diagram text positions.

Both the extraction and the apply pass derive ids here, so a text found on
the first pass is located again on a freshly loaded project. Ids come from
model element ids wherever one exists. Presentations and topics without a
model fall back to a hash of structural fields that translation does not
touch. A label hash is the last resort and stops matching once the label
has been rewritten.
"""

from __future__ import annotations

import hashlib
from typing import Any, Sequence

from .model import Diagram, Element, Presentation, Topic


def structural_hash(*parts: Any) -> str:
    digest = hashlib.sha1()
    for part in parts:
        digest.update(str(part).encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()[:16]


def element_id(element: Element) -> str:
    return element.id


def field_id(element: Element, field: str) -> str:
    return f"{element.id}_{field}"


def diagram_name_id(diagram: Diagram) -> str:
    return f"diagram_{diagram.id}"


def presentation_id(presentation: Presentation) -> str:
    model_id = presentation.model_id
    if model_id:
        return f"presentation_{model_id}"
    kind = presentation.type or "unknown"
    bounds = presentation.bounds
    if bounds:
        return f"presentation_{kind}_{structural_hash(kind, *bounds)}"
    # Unstable: the label is the only distinguishing feature.
    return f"presentation_{kind}_label_{structural_hash(presentation.label)}"


def topic_id(topic: Topic, diagram: Diagram, path: Sequence[object]) -> str:
    """Id of a mind-map topic; ``path`` is its position below the root."""

    if topic.model_id:
        return f"topic_{topic.model_id}"
    return "topic_" + structural_hash(diagram.id, "/".join(str(step) for step in path))
