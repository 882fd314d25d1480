"""
Exception hierarchy shared by the anki-gen modules.
Every failure the CLI reports derives from AnkiGenError.
"""

from typing import List


class AnkiGenError(Exception):
    """Base class for all anki-gen failures."""
    pass


class NetworkError(AnkiGenError):
    """Raised when Ollama or AnkiConnect is unreachable or returns a bad status."""
    pass


class ParseError(AnkiGenError):
    """Raised when a collaborator returns malformed JSON."""
    pass


class AnkiConnectError(AnkiGenError):
    """Exception raised when AnkiConnect returns an error."""
    pass


class SchemaMismatchError(AnkiGenError):
    """Raised when a deck, note type or field name is not known to Anki."""
    pass


class FieldValidationError(AnkiGenError):
    """Raised when generated fields are not acceptable for a note."""
    pass


class MissingFieldsError(FieldValidationError):
    def __init__(self, missing: List[str], got: List[str]):
        self.missing = list(missing)
        self.got = list(got)
        super().__init__(
            f"Model response missing fields: {', '.join(self.missing)}. "
            f"Got: {', '.join(self.got)}"
        )


class AllFieldsEmptyError(FieldValidationError):
    def __init__(self):
        super().__init__("Model returned all empty fields")


class NoContentError(FieldValidationError):
    def __init__(self):
        super().__init__("Model returned no content in any field")


class StorageError(AnkiGenError):
    """Raised when the history file cannot be read or written."""
    pass


class HistoryFormatError(StorageError):
    """Raised when the history file exists but does not hold a valid history."""
    pass


class ConfigError(AnkiGenError):
    """Raised when an explicitly requested config file cannot be used."""
    pass


class BatchFailedError(AnkiGenError):
    """Raised when no item of a batch could be generated."""
    pass
