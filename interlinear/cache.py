"""Per-document translation metadata stored as ``<document>.meta.json``."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import pathlib
import tempfile
import time

from .errors import PersistenceError
from .structures import DocumentMetadata

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".meta.json"


class MetadataCache:
    """Loads, fingerprints, and persists translation metadata."""

    def metadata_path(self, document: pathlib.Path) -> pathlib.Path:
        """Return the co-located metadata path, e.g. ``a.svg`` -> ``a.svg.meta.json``."""

        return document.with_name(document.name + METADATA_SUFFIX)

    def load(self, document: pathlib.Path) -> DocumentMetadata:
        """Load metadata, returning an empty record when absent or unreadable."""

        path = self.metadata_path(document)
        if not path.exists():
            return DocumentMetadata()
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return DocumentMetadata.from_dict(payload)
        except (OSError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable metadata %s: %s", path, exc)
            return DocumentMetadata()

    def save(self, document: pathlib.Path, metadata: DocumentMetadata) -> pathlib.Path:
        """Write metadata atomically next to the document."""

        path = self.metadata_path(document)
        content = json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2)
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
        except OSError as exc:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)
            raise PersistenceError(f"Could not write metadata {path}: {exc}") from exc
        logger.info("Saved translation metadata to %s", path)
        return path

    def fingerprint(self, document: pathlib.Path) -> str:
        """SHA-256 over the raw bytes of the document."""

        digest = hashlib.sha256()
        with document.open("rb") as handle:
            for block in iter(lambda: handle.read(8192), b""):
                digest.update(block)
        return digest.hexdigest()

    def stamp(self, metadata: DocumentMetadata, fingerprint: str) -> None:
        metadata.content_fingerprint = fingerprint
        metadata.last_modified = int(time.time() * 1000)
