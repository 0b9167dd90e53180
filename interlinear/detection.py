"""Unicode-range script detection for source and target languages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .errors import UnsupportedLanguagePairError


Range = Tuple[int, int]


@dataclass(frozen=True)
class ScriptDetector:
    """Membership test over a set of Unicode code point ranges."""

    name: str
    ranges: Tuple[Range, ...]

    def is_script_char(self, char: str) -> bool:
        code = ord(char)
        for start, end in self.ranges:
            if start <= code <= end:
                return True
        return False

    def contains(self, text: Optional[str]) -> bool:
        """Return True when any character of ``text`` belongs to the script."""

        if not text:
            return False
        return any(self.is_script_char(char) for char in text)

    def overlaps(self, other: "ScriptDetector") -> bool:
        """Return True when the two detectors share any code point."""

        return any(
            start <= other_end and other_start <= end
            for start, end in self.ranges
            for other_start, other_end in other.ranges
        )


JAPANESE = ScriptDetector(
    name="japanese",
    ranges=(
        (0x3040, 0x309F),  # Hiragana, incl. voicing marks
        (0x30A0, 0x30FF),  # Katakana
        (0x31F0, 0x31FF),  # Katakana phonetic extensions
        (0x4E00, 0x9FAF),  # CJK unified ideographs (shared with Chinese)
        (0xFF65, 0xFF9F),  # Half-width katakana
    ),
)

KOREAN = ScriptDetector(
    name="korean",
    ranges=(
        (0xAC00, 0xD7A3),  # Hangul syllables
        (0x1100, 0x11FF),  # Hangul jamo
        (0x3130, 0x318F),  # Hangul compatibility jamo
        (0xFFA0, 0xFFDC),  # Half-width Hangul
    ),
)

CHINESE = ScriptDetector(
    name="chinese",
    ranges=(
        (0x4E00, 0x9FFF),
        (0x3400, 0x4DBF),
    ),
)

CYRILLIC = ScriptDetector(name="cyrillic", ranges=((0x0400, 0x04FF),))

LATIN = ScriptDetector(
    name="latin",
    ranges=(
        (0x0041, 0x005A),
        (0x0061, 0x007A),
        (0x00C0, 0x024F),
    ),
)


_LANGUAGE_SCRIPTS: Dict[str, ScriptDetector] = {
    "ja": JAPANESE,
    "jp": JAPANESE,
    "japanese": JAPANESE,
    "ko": KOREAN,
    "kr": KOREAN,
    "korean": KOREAN,
    "zh": CHINESE,
    "chinese": CHINESE,
    "ru": CYRILLIC,
    "uk": CYRILLIC,
    "bg": CYRILLIC,
    "russian": CYRILLIC,
}


def detector_for(language: str) -> ScriptDetector:
    """Select the detector for an ISO-639 code or language name.

    Region suffixes are ignored (``zh-Hans`` and ``en-US`` resolve on the
    primary subtag). Anything not written in a dedicated script falls back to
    the Latin detector.
    """

    normalized = (language or "").strip().lower().replace("_", "-")
    primary = normalized.split("-", 1)[0]
    return _LANGUAGE_SCRIPTS.get(normalized) or _LANGUAGE_SCRIPTS.get(primary) or LATIN


def check_language_pair(source_language: str, target_language: str) -> None:
    """Reject pairs whose scripts cannot be told apart.

    Translated text is recognised by the target script, so a target that
    shares characters with the source (ja and zh share the ideographs) would
    make every source label look translated already.
    """

    source = detector_for(source_language)
    target = detector_for(target_language)
    if source.overlaps(target):
        raise UnsupportedLanguagePairError(
            f"Cannot translate {source_language} to {target_language}: the {source.name} and "
            f"{target.name} scripts overlap, so translated text cannot be told apart."
        )
