"""Core data structures for the Interlinear translator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


MISS_SAMPLE_LIMIT = 5


@dataclass
class TextUnit:
    """Represents a single piece of translatable text and where it lives."""

    unit_id: str
    original_text: str
    kind: str = "text"
    location: str = ""
    translated_text: Optional[str] = None
    source_group_id: Optional[str] = None
    representative_id: Optional[str] = None
    duplicate_ids: List[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return self.representative_id is not None


@dataclass
class TranslationCacheEntry:
    """A previously obtained translation for one unit id."""

    unit_id: str
    original_text: str
    translated_text: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.unit_id,
            "originalText": self.original_text,
            "translatedText": self.translated_text,
        }

    @classmethod
    def from_dict(cls, unit_id: str, payload: Mapping[str, Any]) -> "TranslationCacheEntry":
        if not isinstance(payload, Mapping):
            raise ValueError(f"Cache entry '{unit_id}' must be an object.")
        original = payload.get("originalText")
        translated = payload.get("translatedText")
        if not isinstance(original, str) or not isinstance(translated, str):
            raise ValueError(f"Cache entry '{unit_id}' is missing text fields.")
        return cls(
            unit_id=str(payload.get("id") or unit_id),
            original_text=original,
            translated_text=translated,
        )


@dataclass
class DocumentMetadata:
    """Per-document translation record stored next to the source file."""

    content_fingerprint: Optional[str] = None
    last_modified: int = 0
    entries: Dict[str, TranslationCacheEntry] = field(default_factory=dict)

    def lookup(self, unit: TextUnit) -> Optional[str]:
        """Return the cached translation if the stored source text still matches."""

        entry = self.entries.get(unit.unit_id)
        if entry is None or entry.original_text != unit.original_text:
            return None
        return entry.translated_text

    def rebuild(self, units: List[TextUnit]) -> None:
        """Replace all entries with the translated units of the current run."""

        self.entries = {
            unit.unit_id: TranslationCacheEntry(
                unit_id=unit.unit_id,
                original_text=unit.original_text,
                translated_text=unit.translated_text,
            )
            for unit in units
            if unit.translated_text is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "originalFileHash": self.content_fingerprint,
            "lastModified": self.last_modified,
            "translations": {
                unit_id: entry.to_dict() for unit_id, entry in self.entries.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DocumentMetadata":
        if not isinstance(payload, Mapping):
            raise ValueError("Metadata root must be an object.")
        translations = payload.get("translations") or {}
        if not isinstance(translations, Mapping):
            raise ValueError("Metadata 'translations' must be an object.")
        entries = {
            str(unit_id): TranslationCacheEntry.from_dict(str(unit_id), value)
            for unit_id, value in translations.items()
        }
        fingerprint = payload.get("originalFileHash")
        return cls(
            content_fingerprint=str(fingerprint) if fingerprint else None,
            last_modified=int(payload.get("lastModified") or 0),
            entries=entries,
        )


@dataclass
class TraversalReport:
    """Outcome of one apply traversal, aggregated by the caller."""

    applied: int = 0
    already_translated: int = 0
    failures: int = 0
    warnings: int = 0
    miss_count: int = 0
    miss_samples: List[str] = field(default_factory=list)

    def record_applied(self) -> None:
        self.applied += 1

    def record_already_translated(self) -> None:
        self.already_translated += 1

    def record_miss(self, unit_id: str) -> None:
        self.miss_count += 1
        if len(self.miss_samples) < MISS_SAMPLE_LIMIT:
            self.miss_samples.append(unit_id)

    def record_failure(self, logger: logging.Logger, context: str, exc: Exception) -> None:
        self.failures += 1
        logger.warning("Could not update %s: %s", context, exc)

    def record_warning(self, logger: logging.Logger, context: str, exc: Exception) -> None:
        self.warnings += 1
        logger.warning("Skipping %s: %s", context, exc)

    def log_misses(self, logger: logging.Logger, label: str) -> None:
        """Emit a single aggregate line for unmatched identifiers."""

        if not self.miss_count:
            return
        extra = self.miss_count - len(self.miss_samples)
        suffix = f" (and {extra} more)" if extra > 0 else ""
        logger.warning(
            "%s: %d node(s) had no matching translation: %s%s",
            label,
            self.miss_count,
            ", ".join(self.miss_samples),
            suffix,
        )
