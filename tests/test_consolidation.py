from interlinear.consolidation import consolidate, propagate, representatives
from interlinear.structures import TextUnit


def _units(*texts: str) -> list:
    return [TextUnit(unit_id=f"u{index}", original_text=text) for index, text in enumerate(texts)]


def test_consolidate_marks_later_copies() -> None:
    units = _units("顧客", "注文", "顧客", "顧客")

    duplicates = consolidate(units)

    assert duplicates == 2
    assert [unit.unit_id for unit in representatives(units)] == ["u0", "u1"]
    assert units[0].duplicate_ids == ["u2", "u3"]
    assert units[2].representative_id == "u0"
    assert units[3].is_duplicate


def test_consolidate_is_repeatable() -> None:
    units = _units("顧客", "顧客")
    consolidate(units)
    consolidate(units)

    assert units[0].duplicate_ids == ["u1"]


def test_propagate_copies_representative_translation() -> None:
    units = _units("顧客", "注文", "顧客")
    consolidate(units)
    units[0].translated_text = "고객"

    copied = propagate(units)

    assert copied == 1
    assert units[2].translated_text == "고객"
    assert units[1].translated_text is None


def test_propagate_skips_untranslated_representatives() -> None:
    units = _units("顧客", "顧客")
    consolidate(units)

    assert propagate(units) == 0
    assert units[1].translated_text is None
