from pathlib import Path

import pytest
from lxml import etree

from conftest import RecordingProvider, make_client
from interlinear.detection import JAPANESE, KOREAN
from interlinear.errors import ExtractionError
from interlinear.pipeline import TranslationPipeline
from interlinear.structures import TextUnit
from interlinear.svg.applier import apply_units
from interlinear.svg.extractor import extract_units, locate_nodes
from interlinear.svg.format import SvgFormat
from interlinear.svg.loader import SVG_NS, XHTML_NS, load_svg
from interlinear.svg.styles import OVERLAY_STYLE_ID, ensure_overlay_styles, reduce_font_size

DRAWING = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" width="400" height="300">
  <g id="shape1">
    <text id="t1" x="10" y="20" font-size="12">顧客</text>
  </g>
  <text x="30" y="40"><tspan x="30" y="40">注文</tspan><tspan>一覧</tspan></text>
  <text id="t3" x="50" y="60">Order</text>
  <g id="g-label">
    <foreignObject width="100" height="40">
      <div xmlns="http://www.w3.org/1999/xhtml" style="display: flex; white-space: pre-wrap; font-size: 16px">
        <div><span class="text-edit label">商品名</span></div>
      </div>
    </foreignObject>
  </g>
</svg>
"""


def _write(tmp_path: Path, content: str = DRAWING, name: str = "drawing.svg") -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def _run(source: Path, output: Path, provider: RecordingProvider):
    pipeline = TranslationPipeline(SvgFormat("ja", "ko"), make_client(provider), chunk_pause=0)
    return pipeline.run(source, output)


def _find(root: etree._Element, path: str) -> etree._Element:
    element = root.find(path, namespaces={"svg": SVG_NS, "x": XHTML_NS})
    assert element is not None, path
    return element


def test_extraction_finds_text_and_labels(tmp_path: Path) -> None:
    units = extract_units(load_svg(_write(tmp_path)), JAPANESE)

    assert units[0].unit_id == "t1"
    assert units[1].unit_id.startswith("text_")
    assert units[1].original_text == "注文一覧"
    assert units[2].unit_id == "g-label"
    assert units[2].kind == "svg_foreign_object"
    assert [unit.original_text for unit in units] == ["顧客", "注文一覧", "商品名"]


def test_generated_ids_are_stable(tmp_path: Path) -> None:
    path = _write(tmp_path)

    first = [node.unit_id for node in locate_nodes(load_svg(path))]
    second = [node.unit_id for node in locate_nodes(load_svg(path))]

    assert first == second


def test_pipeline_builds_overlay(tmp_path: Path) -> None:
    source = _write(tmp_path)
    output = tmp_path / "drawing_ko.svg"

    summary = _run(source, output, RecordingProvider())

    root = load_svg(output).getroot()
    original = _find(root, ".//svg:text[@id='t1']")
    group = original.getparent()
    translated = group[1]
    assert summary.applied_units == 3
    assert group.get("class") == "il-text-wrapper"
    assert group.getparent().get("id") == "shape1"
    assert original.get("class") == "il-original-text"
    assert translated.get("class") == "il-translated-text"
    assert translated.text == "번역:顧客"
    assert translated.get("font-size") == "12"
    assert translated.get("x") == "10"
    assert translated.get("id") is None

    texts = root.findall(".//{%s}text[@class='il-translated-text']" % SVG_NS)
    assert [text.text for text in texts] == ["번역:顧客", "번역:注文一覧"]
    assert texts[1].get("x") == "30"
    assert texts[1].get("y") == "40"

    plain = _find(root, ".//svg:text[@id='t3']")
    assert plain.getparent() is root
    assert plain.get("class") is None


def test_foreign_object_label_gets_overlay(tmp_path: Path) -> None:
    source = _write(tmp_path)
    output = tmp_path / "drawing_ko.svg"
    _run(source, output, RecordingProvider())

    root = load_svg(output).getroot()
    span = _find(root, ".//x:span[@class='text-edit label']")
    wrapper = span.getparent()
    overlay = wrapper[1]
    outer = wrapper.getparent().getparent()
    assert wrapper.get("class") == "il-wrapper"
    assert overlay.get("class") == "il-overlay"
    assert overlay.text == "번역:商品名"
    assert overlay.get("style") == "font-size: 14px;"
    assert outer.get("style") == "display: flex; font-size: 16px"


def test_overlay_stylesheet_is_added_once(tmp_path: Path) -> None:
    source = _write(tmp_path)
    output = tmp_path / "drawing_ko.svg"
    _run(source, output, RecordingProvider())

    root = load_svg(output).getroot()
    styles = [element for element in root.iter() if element.get("id") == OVERLAY_STYLE_ID]
    assert len(styles) == 1
    assert etree.QName(styles[0].getparent()).localname == "defs"
    assert ".il-wrapper:hover .il-overlay" in styles[0].text
    assert ensure_overlay_styles(root) is False


def test_second_run_uses_cache_and_matches(tmp_path: Path) -> None:
    source = _write(tmp_path)
    first = tmp_path / "first.svg"
    second = tmp_path / "second.svg"
    _run(source, first, RecordingProvider())

    provider = RecordingProvider()
    summary = _run(source, second, provider)

    assert provider.requests == []
    assert summary.reused_units == 3
    assert second.read_bytes() == first.read_bytes()


def test_rerun_on_output_adds_nothing(tmp_path: Path) -> None:
    source = _write(tmp_path)
    first = tmp_path / "drawing_ko.svg"
    second = tmp_path / "drawing_ko_ko.svg"
    _run(source, first, RecordingProvider())

    provider = RecordingProvider()
    summary = _run(first, second, provider)

    assert summary.copied_verbatim
    assert provider.requests == []
    assert second.read_bytes() == first.read_bytes()


def test_drawing_without_source_text_has_no_stylesheet(tmp_path: Path) -> None:
    source = _write(
        tmp_path,
        '<svg xmlns="http://www.w3.org/2000/svg"><text id="a">Hello</text></svg>',
    )
    output = tmp_path / "out.svg"

    summary = _run(source, output, RecordingProvider())

    assert summary.copied_verbatim
    assert OVERLAY_STYLE_ID not in output.read_text(encoding="utf-8")


def test_text_already_in_target_script_is_skipped(tmp_path: Path) -> None:
    tree = load_svg(
        _write(
            tmp_path,
            '<svg xmlns="http://www.w3.org/2000/svg">'
            '<text id="a">顧客 고객</text><text id="b">注文</text></svg>',
        )
    )
    units = [
        TextUnit(unit_id="a", original_text="顧客 고객", translated_text="고객"),
        TextUnit(unit_id="b", original_text="注文", translated_text="주문"),
    ]

    report = apply_units(tree, units, JAPANESE, KOREAN)

    assert report.applied == 1
    assert report.already_translated == 1
    mixed = _find(tree.getroot(), ".//svg:text[@id='a']")
    assert mixed.getparent() is tree.getroot()
    assert mixed.get("class") is None


def test_stale_translation_is_a_miss(tmp_path: Path) -> None:
    tree = load_svg(
        _write(tmp_path, '<svg xmlns="http://www.w3.org/2000/svg"><text id="a">顧客名</text></svg>')
    )

    report = apply_units(
        tree, [TextUnit(unit_id="a", original_text="顧客", translated_text="고객")], JAPANESE, KOREAN
    )

    assert report.applied == 0
    assert report.miss_count == 1
    assert report.miss_samples == ["a"]
    assert all(element.get("id") != OVERLAY_STYLE_ID for element in tree.getroot().iter())


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        ("16px", "14px"),
        ("15pt", "13pt"),
        ("12px", "11px"),
        ("12.5px", "11.5px"),
        ("10px", "10px"),
        ("10pt", "9pt"),
        ("9.5pt", "9.5pt"),
        ("1.2em", "1.2em"),
    ],
)
def test_reduce_font_size(size: str, expected: str) -> None:
    assert reduce_font_size(size) == expected


def test_malformed_svg_is_an_extraction_error(tmp_path: Path) -> None:
    with pytest.raises(ExtractionError):
        load_svg(_write(tmp_path, "<svg><text></svg>"))


def test_non_svg_root_is_an_extraction_error(tmp_path: Path) -> None:
    with pytest.raises(ExtractionError):
        load_svg(_write(tmp_path, "<html><body/></html>", name="page.svg"))
