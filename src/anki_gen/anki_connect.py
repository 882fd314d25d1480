"""
AnkiConnect client.
Checks that the target deck, note type and fields exist, then adds notes.
"""

import logging
from typing import Any, Dict, List, Sequence

import requests

from anki_gen.errors import AnkiConnectError, NetworkError, ParseError, SchemaMismatchError

logger = logging.getLogger(__name__)


class AnkiConnect:
    def __init__(self, url: str = "http://localhost:8765", version: int = 6, timeout: float = 10):
        self.url = url
        self.version = version
        self.timeout = timeout

    def invoke(self, action: str, **params: Any) -> Any:
        """Send request to AnkiConnect API."""
        payload = {
            "action": action,
            "version": self.version,
            "params": params
        }

        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(
                "Could not connect to AnkiConnect. "
                "Make sure Anki is running with AnkiConnect installed."
            ) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"AnkiConnect request failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise ParseError(f"AnkiConnect returned invalid JSON: {e}") from e

        if not isinstance(result, dict):
            raise ParseError(f"Unexpected AnkiConnect response: {result!r}")
        if result.get("error"):
            raise AnkiConnectError(f"AnkiConnect error: {result['error']}")

        return result.get("result")

    def check_version(self) -> int:
        return int(self.invoke("version") or 0)

    def deck_names(self) -> List[str]:
        return list(self.invoke("deckNames") or [])

    def model_names(self) -> List[str]:
        return list(self.invoke("modelNames") or [])

    def model_field_names(self, model_name: str) -> List[str]:
        return list(self.invoke("modelFieldNames", modelName=model_name) or [])

    def preflight(self, deck: str, note_type: str, fields: Sequence[str]) -> List[str]:
        """
        Validate deck, note type and fields.

        Returns:
            All field names of the note type, sort field first
        """
        decks = self.deck_names()
        if deck not in decks:
            raise SchemaMismatchError(
                f"Deck '{deck}' not found. Available: {', '.join(decks)}"
            )

        models = self.model_names()
        if note_type not in models:
            raise SchemaMismatchError(
                f"Note type '{note_type}' not found. Available: {', '.join(models)}"
            )

        model_fields = self.model_field_names(note_type)
        missing = [f for f in fields if f not in model_fields]
        if missing:
            raise SchemaMismatchError(
                f"Fields {missing} not found in note type '{note_type}'. "
                f"Available fields: {', '.join(model_fields)}"
            )

        if model_fields and model_fields[0] not in fields:
            logger.warning(
                f"Sort field '{model_fields[0]}' is not in your --fields list. "
                "It will be left empty unless other fields cover it."
            )

        return model_fields

    @staticmethod
    def build_note(fields: Dict[str, str], note_type: str, deck: str,
                   all_fields: Sequence[str]) -> Dict[str, Any]:
        """Note payload covering every field of the note type; unknown keys are dropped."""
        return {
            "deckName": deck,
            "modelName": note_type,
            "fields": {name: fields.get(name, "") for name in all_fields},
            "options": {
                "allowDuplicate": False
            }
        }

    def add_note(self, fields: Dict[str, str], note_type: str, deck: str,
                 all_fields: Sequence[str]) -> int:
        """Add a single note to Anki and return its id."""
        note = self.build_note(fields, note_type, deck, all_fields)
        return self.invoke("addNote", note=note)
