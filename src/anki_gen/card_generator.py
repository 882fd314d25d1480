"""
Card generation workflow: preflight, prompt, generate, reconcile, validate,
add to Anki, record history.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from anki_gen.anki_connect import AnkiConnect
from anki_gen.errors import AnkiGenError, BatchFailedError
from anki_gen.field_reconciler import ValidationMode, history_label, reconcile, validate
from anki_gen.history import History, HistoryStore
from anki_gen.ollama_client import OllamaClient
from anki_gen.prompts import build_next_prompt, build_prompt

logger = logging.getLogger(__name__)


@dataclass
class CardRequest:
    """What the user asks for when generating a card."""
    description: str
    fields: List[str]
    note_type: str
    deck: str
    mode: ValidationMode = ValidationMode.STRICT


@dataclass
class BatchResult:
    total: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class CardGenerator:
    def __init__(self, ollama: OllamaClient, anki: AnkiConnect, store: HistoryStore):
        self.ollama = ollama
        self.anki = anki
        self.store = store

    def preflight(self, request: CardRequest) -> List[str]:
        """Validate Anki config. Returns all field names of the note type."""
        print("Checking Anki configuration...")
        all_fields = self.anki.preflight(request.deck, request.note_type, request.fields)
        print(f"  ✓ Deck: '{request.deck}'")
        print(f"  ✓ Note type: '{request.note_type}'")
        print(f"  ✓ Fields: {', '.join(request.fields)}")
        print(f"  Note type has {len(all_fields)} total fields: {', '.join(all_fields)}")
        return all_fields

    def _create_card(self, request: CardRequest, prompt: str, all_fields: Sequence[str]) -> Dict[str, str]:
        raw = self.ollama.generate(prompt, request.fields, request.mode)
        fields = reconcile(raw, request.fields)
        validate(fields, request.fields, request.mode)
        logger.debug(f"Generated fields: {fields}")

        note_id = self.anki.add_note(fields, request.note_type, request.deck, all_fields)
        logger.debug(f"Added note {note_id}")
        return fields

    def generate(self, request: CardRequest) -> Dict[str, str]:
        """Generate a single card from its description."""
        all_fields = self.preflight(request)
        print(f"Generating card for: {request.description}")

        fields = self._create_card(request, build_prompt(request), all_fields)
        print("✓ Card added to Anki!")

        history = self.store.load()
        history.append(request.description)
        self.store.save(history)
        return fields

    def next(self, request: CardRequest) -> Dict[str, str]:
        """
        Generate the next card of a series.

        The whole history is listed in the prompt as already generated. The
        new card is recorded under its sort field value.
        """
        all_fields = self.preflight(request)
        history = self.store.load()
        print(f"Generating next card (already have {len(history)} items)")

        prompt = build_next_prompt(request, history.used_items)
        fields = self._create_card(request, prompt, all_fields)
        print("✓ Card added to Anki!")

        history.append(history_label(fields, request.fields, request.description))
        self.store.save(history)
        return fields

    def batch(self, request: CardRequest, items: Sequence[str]) -> BatchResult:
        """
        Generate one card per item, in order.

        A failing item is reported and skipped. History is saved after each
        successful item. Raises BatchFailedError when nothing succeeded.
        """
        all_fields = self.preflight(request)
        history: History = self.store.load()
        result = BatchResult(total=len(items))

        for i, item in enumerate(items, 1):
            print(f"\n[{i}/{result.total}] Generating: {item}")
            item_request = CardRequest(
                description=item,
                fields=request.fields,
                note_type=request.note_type,
                deck=request.deck,
                mode=request.mode,
            )

            try:
                self._create_card(item_request, build_prompt(item_request), all_fields)
            except AnkiGenError as e:
                print(f"  ✗ Failed: {e}")
                result.failed.append((item, str(e)))
                continue

            print("  ✓ Added to Anki")
            result.succeeded.append(item)
            history.append(item)
            self.store.save(history)

        print("\n" + "=" * 50)
        print(f"Batch complete: {len(result.succeeded)} succeeded, "
              f"{len(result.failed)} failed out of {result.total}")
        if result.failed:
            print("\nFailed items:")
            for item, message in result.failed:
                print(f"  - {item}: {message}")
        print("=" * 50)

        if not items:
            raise BatchFailedError("No items to process")
        if not result.succeeded:
            raise BatchFailedError("All batch items failed")
        return result
