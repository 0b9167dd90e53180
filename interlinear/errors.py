"""Error definitions for the Interlinear translator."""

from __future__ import annotations


class InterlinearError(Exception):
    """Base exception for all custom errors."""


class ExtractionError(InterlinearError):
    """Raised when a document cannot be opened, parsed, or traversed."""


class TranslationError(InterlinearError):
    """Raised when the translation service gives up on a chunk."""


class ApplicationError(InterlinearError):
    """Raised when translations could not be written back into a document."""


class PersistenceError(InterlinearError):
    """Raised when the metadata cache cannot be written."""


class PipelineCancelled(InterlinearError):
    """Raised when a caller cancels a running pipeline."""


class UnsupportedFileTypeError(InterlinearError):
    """Raised when a given file extension is not supported."""


class OverwriteRefusedError(InterlinearError):
    """Raised when attempting to overwrite an output without consent."""


class TranslationProviderConfigurationError(InterlinearError):
    """Raised when the translation provider is misconfigured."""


class TranslationProviderError(InterlinearError):
    """Raised when the translation provider fails permanently."""


class TranslationServiceOverloaded(TranslationProviderError):
    """Raised when the provider signals rate limiting or overload."""


class StructuralAccessWarning(InterlinearError):
    """Raised when a sub-tree of a document cannot be navigated.

    Traversal code catches this per sub-tree, records it, and carries on
    with the rest of the document.
    """


class UnsupportedLanguagePairError(InterlinearError):
    """Raised when source and target languages share a script."""
