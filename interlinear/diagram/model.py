"""JSON-backed diagram project model (``.dgm`` files).

A project file holds one model tree (packages, classes, use cases, comments,
ER entities) plus diagrams. Every wrapper object below is a thin view over
the raw JSON dictionaries: reads and writes go straight to the dictionary, so
keys this module does not know about survive a load/save round trip.

Elements are addressed by their ``id``; :class:`ProjectAccessor` keeps an
index from id to raw dictionary so presentations can resolve the element
they show.
"""

from __future__ import annotations

import json
import os
import pathlib
import re
import tempfile
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..errors import StructuralAccessWarning

# Element kinds whose names are rendered on one line; a line break is rejected.
SINGLE_LINE_KINDS = frozenset(
    {"model", "package", "class", "interface", "activity", "activity_node", "diagram"}
)

CONTROL_NODE_KINDS = frozenset(
    {"initial", "final", "flow_final", "decision", "merge", "fork", "join"}
)

# Default names the modelling tool gives to control nodes.
CONTROL_NODE_NAME = re.compile(
    r"^(?:開始ノード\d*|終了ノード\d*|フロー終了ノード\d*"
    r"|デシジョンノード.*|マージノード.*|フォークノード.*|ジョインノード.*)$"
)


class Element:
    """Base view over one raw JSON object."""

    kind = "element"

    def __init__(self, raw: Dict[str, Any], accessor: "ProjectAccessor") -> None:
        self.raw = raw
        self.accessor = accessor

    @property
    def id(self) -> str:
        value = self.raw.get("id")
        if not isinstance(value, str) or not value:
            raise StructuralAccessWarning(f"{self.kind} element without an id")
        return value

    @property
    def single_line(self) -> bool:
        return self.kind in SINGLE_LINE_KINDS

    def _children(self, key: str, factory: Callable[[Any], "Element"]) -> List["Element"]:
        value = self.raw.get(key, [])
        if not isinstance(value, list):
            raise StructuralAccessWarning(f"'{key}' of {self.kind} is not a list")
        return [factory(item) for item in value]

    def _text(self, key: str) -> str:
        value = self.raw.get(key)
        return value if isinstance(value, str) else ""

    def _set_text(self, key: str, value: str) -> None:
        if self.single_line and "\n" in value:
            raise ValueError(f"{self.kind} text cannot contain line breaks")
        self.raw[key] = value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.raw.get('id')!r}>"


class BrokenElement(Element):
    """Placeholder for a child entry that is not a well-formed element."""

    kind = "broken"

    def __init__(self, raw: Any, accessor: "ProjectAccessor") -> None:
        super().__init__({}, accessor)
        self.payload = raw

    @property
    def id(self) -> str:
        raise StructuralAccessWarning(f"malformed element {self.payload!r}")

    def __getattr__(self, attribute: str) -> Any:
        if attribute.startswith("__"):
            raise AttributeError(attribute)
        raise StructuralAccessWarning(f"malformed element {self.payload!r}")


class NamedElement(Element):
    kind = "named"

    @property
    def name(self) -> str:
        return self._text("name")

    @name.setter
    def name(self, value: str) -> None:
        self._set_text("name", value)


class Attribute(NamedElement):
    kind = "attribute"


class Operation(NamedElement):
    kind = "operation"


class UseCase(NamedElement):
    kind = "usecase"


class Comment(NamedElement):
    kind = "comment"

    @property
    def body(self) -> str:
        return self._text("body")

    @body.setter
    def body(self, value: str) -> None:
        self._set_text("body", value)


class ClassElement(NamedElement):
    @property
    def kind(self) -> str:  # type: ignore[override]
        return "interface" if self.raw.get("kind") == "interface" else "class"

    @property
    def attributes(self) -> List[Element]:
        return self._children("attributes", lambda raw: self.accessor.wrap(raw, Attribute))

    @property
    def operations(self) -> List[Element]:
        return self._children("operations", lambda raw: self.accessor.wrap(raw, Operation))


class ERAttribute(NamedElement):
    """ER attribute; ``name`` is the logical name."""

    kind = "er_attribute"

    @property
    def logical_name(self) -> str:
        return self.name

    @logical_name.setter
    def logical_name(self, value: str) -> None:
        self.name = value

    @property
    def physical_name(self) -> str:
        return self._text("physicalName")

    @physical_name.setter
    def physical_name(self, value: str) -> None:
        self._set_text("physicalName", value)


class EREntity(ERAttribute):
    kind = "er_entity"

    @property
    def primary_keys(self) -> List[Element]:
        return self._children("primaryKeys", lambda raw: self.accessor.wrap(raw, ERAttribute))

    @property
    def non_primary_keys(self) -> List[Element]:
        return self._children("nonPrimaryKeys", lambda raw: self.accessor.wrap(raw, ERAttribute))


class Package(NamedElement):
    kind = "package"

    @property
    def owned_elements(self) -> List[Element]:
        return self._children("ownedElements", self.accessor.wrap)

    @property
    def diagrams(self) -> List[Element]:
        return self._children("diagrams", self.accessor.wrap_diagram)


class Model(Package):
    kind = "model"


class ActivityNode(NamedElement):
    kind = "activity_node"

    @property
    def node_kind(self) -> str:
        return self._text("nodeKind") or "action"

    @property
    def is_control(self) -> bool:
        return self.node_kind in CONTROL_NODE_KINDS or bool(CONTROL_NODE_NAME.match(self.name))


class Flow(NamedElement):
    kind = "flow"


class Activity(NamedElement):
    kind = "activity"

    @property
    def nodes(self) -> List[Element]:
        return self._children("nodes", lambda raw: self.accessor.wrap(raw, ActivityNode))

    @property
    def flows(self) -> List[Element]:
        return self._children("flows", lambda raw: self.accessor.wrap(raw, Flow))


class Lifeline(NamedElement):
    kind = "lifeline"


class Message(NamedElement):
    kind = "message"

    @property
    def argument(self) -> str:
        return self._text("argument")

    @argument.setter
    def argument(self, value: str) -> None:
        self._set_text("argument", value)

    @property
    def return_value(self) -> str:
        return self._text("returnValue")

    @return_value.setter
    def return_value(self, value: str) -> None:
        self._set_text("returnValue", value)

    @property
    def guard(self) -> str:
        return self._text("guard")

    @guard.setter
    def guard(self, value: str) -> None:
        self._set_text("guard", value)


class Interaction(NamedElement):
    kind = "interaction"

    @property
    def lifelines(self) -> List[Element]:
        return self._children("lifelines", lambda raw: self.accessor.wrap(raw, Lifeline))

    @property
    def messages(self) -> List[Element]:
        return self._children("messages", lambda raw: self.accessor.wrap(raw, Message))


class Presentation(Element):
    """A shape on a diagram; shows its own label or its model's name."""

    kind = "presentation"

    @property
    def type(self) -> str:
        return self._text("type")

    @property
    def single_line(self) -> bool:
        lowered = self.type.lower()
        return "activity" in lowered or "partition" in lowered

    @property
    def model_id(self) -> Optional[str]:
        value = self.raw.get("model")
        return value if isinstance(value, str) and value else None

    @property
    def model(self) -> Optional[Element]:
        if self.model_id is None:
            return None
        return self.accessor.find(self.model_id)

    @property
    def has_own_label(self) -> bool:
        return isinstance(self.raw.get("label"), str)

    @property
    def label(self) -> str:
        if self.has_own_label:
            return self.raw["label"]
        model = self.model
        if isinstance(model, NamedElement):
            return model.name
        return ""

    @label.setter
    def label(self, value: str) -> None:
        model = self.model
        if not self.has_own_label and isinstance(model, NamedElement):
            model.name = value
            return
        self._set_text("label", value)

    @property
    def bounds(self) -> Optional[List[float]]:
        value = self.raw.get("bounds")
        if isinstance(value, list) and value:
            return value
        return None


class Topic(Presentation):
    kind = "topic"

    @property
    def single_line(self) -> bool:
        return False

    @property
    def children(self) -> List[Element]:
        return self._children("children", lambda raw: self.accessor.wrap(raw, Topic))


class Diagram(NamedElement):
    kind = "diagram"
    diagram_type = "diagram"

    @property
    def presentations(self) -> List[Element]:
        return self._children("presentations", lambda raw: self.accessor.wrap(raw, Presentation))


class ClassDiagram(Diagram):
    diagram_type = "class"


class UseCaseDiagram(Diagram):
    diagram_type = "usecase"


class ERDiagram(Diagram):
    diagram_type = "er"


class SequenceDiagram(Diagram):
    diagram_type = "sequence"

    @property
    def interaction(self) -> Optional[Interaction]:
        raw = self.raw.get("interaction")
        if raw is None:
            return None
        return self.accessor.wrap(raw, Interaction)  # type: ignore[return-value]


class ActivityDiagram(Diagram):
    diagram_type = "activity"

    @property
    def activity(self) -> Optional[Activity]:
        raw = self.raw.get("activity")
        if raw is None:
            return None
        return self.accessor.wrap(raw, Activity)  # type: ignore[return-value]


class MindMapDiagram(Diagram):
    diagram_type = "mindmap"

    @property
    def root(self) -> Optional[Topic]:
        raw = self.raw.get("root")
        if raw is None:
            return None
        return self.accessor.wrap(raw, Topic)  # type: ignore[return-value]

    @property
    def floating_topics(self) -> List[Element]:
        return self._children("floatingTopics", lambda raw: self.accessor.wrap(raw, Topic))


ELEMENT_KINDS: Dict[str, type] = {
    "model": Model,
    "package": Package,
    "class": ClassElement,
    "interface": ClassElement,
    "attribute": Attribute,
    "operation": Operation,
    "usecase": UseCase,
    "comment": Comment,
    "er_entity": EREntity,
    "er_attribute": ERAttribute,
}

DIAGRAM_TYPES: Dict[str, type] = {
    "class": ClassDiagram,
    "usecase": UseCaseDiagram,
    "er": ERDiagram,
    "sequence": SequenceDiagram,
    "activity": ActivityDiagram,
    "mindmap": MindMapDiagram,
}


class ProjectAccessor:
    """Open/close/save surface over one project file.

    Usable as a context manager; the loaded document is dropped on exit.
    """

    def __init__(self) -> None:
        self.path: Optional[pathlib.Path] = None
        self._document: Optional[Dict[str, Any]] = None
        self._index: Dict[str, Dict[str, Any]] = {}

    def open(self, path: pathlib.Path) -> "ProjectAccessor":
        document = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
        if not isinstance(document, dict) or not isinstance(document.get("project"), dict):
            raise ValueError(f"{path} is not a diagram project (missing 'project' object)")
        self.path = pathlib.Path(path)
        self._document = document
        self._index = {}
        self._build_index(document["project"])
        return self

    def close(self) -> None:
        self._document = None
        self._index = {}

    def __enter__(self) -> "ProjectAccessor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._document is not None

    @property
    def project(self) -> Model:
        if self._document is None:
            raise RuntimeError("No project is open.")
        return Model(self._document["project"], self)

    def find(self, element_id: str) -> Optional[Element]:
        raw = self._index.get(element_id)
        if raw is None:
            return None
        return self.wrap(raw)

    def wrap(self, raw: Any, default: type = NamedElement) -> Element:
        if not isinstance(raw, dict):
            return BrokenElement(raw, self)
        cls = ELEMENT_KINDS.get(str(raw.get("kind", "")), default)
        return cls(raw, self)

    def wrap_diagram(self, raw: Any) -> Element:
        if not isinstance(raw, dict):
            return BrokenElement(raw, self)
        cls = DIAGRAM_TYPES.get(str(raw.get("diagramType", "")), Diagram)
        return cls(raw, self)

    def save_as(self, path: pathlib.Path) -> None:
        """Write the (possibly modified) document to ``path`` atomically."""

        if self._document is None:
            raise RuntimeError("No project is open.")
        path = pathlib.Path(path)
        content = json.dumps(self._document, ensure_ascii=False, indent=2)
        temp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=str(path.parent),
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                temp_name = handle.name
                handle.write(content)
            os.replace(temp_name, path)
        except OSError:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    def _build_index(self, raw: Any) -> None:
        for item in _iter_objects(raw):
            element_id = item.get("id")
            if isinstance(element_id, str) and element_id not in self._index:
                self._index[element_id] = item


def _iter_objects(raw: Any) -> Iterator[Dict[str, Any]]:
    stack = [raw]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            yield current
            stack.extend(reversed(list(current.values())))
        elif isinstance(current, list):
            stack.extend(reversed(current))
