"""Loading and saving SVG documents with lxml."""

from __future__ import annotations

import pathlib
from typing import Optional

from lxml import etree

from ..errors import ExtractionError

SVG_NS = "http://www.w3.org/2000/svg"
XHTML_NS = "http://www.w3.org/1999/xhtml"


def local_name(element: etree._Element) -> str:
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def namespace_of(element: etree._Element) -> Optional[str]:
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).namespace


def make_element(name: str, like: etree._Element, **attributes: str) -> etree._Element:
    """Create ``name`` in the same namespace as ``like``."""

    namespace = namespace_of(like)
    tag = f"{{{namespace}}}{name}" if namespace else name
    element = etree.Element(tag)
    for key, value in attributes.items():
        element.set(key.replace("_", "-"), value)
    return element


def tags(name: str, namespace: str) -> tuple:
    """Tag filter matching ``name`` with and without ``namespace``."""

    return (f"{{{namespace}}}{name}", name)


def add_class(element: etree._Element, class_name: str) -> None:
    classes = (element.get("class") or "").split()
    if class_name not in classes:
        classes.append(class_name)
    element.set("class", " ".join(classes))


def has_class(element: etree._Element, class_name: str) -> bool:
    return class_name in (element.get("class") or "").split()


def load_svg(path: pathlib.Path) -> etree._ElementTree:
    parser = etree.XMLParser(huge_tree=True, resolve_entities=False, remove_blank_text=False)
    try:
        tree = etree.parse(str(path), parser)
    except etree.XMLSyntaxError as exc:
        raise ExtractionError(f"{path} is not well-formed XML: {exc}") from exc
    except OSError as exc:
        raise ExtractionError(f"Could not read {path}: {exc}") from exc
    if local_name(tree.getroot()) != "svg":
        raise ExtractionError(f"{path} is not an SVG document.")
    return tree


def save_svg(tree: etree._ElementTree, destination: pathlib.Path) -> None:
    tree.write(str(destination), encoding="utf-8", xml_declaration=True)
