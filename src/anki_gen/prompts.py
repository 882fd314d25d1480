"""
Prompt construction for flashcard generation.
The validation mode picks one of two fixed instruction blocks.
"""

from typing import Sequence

from anki_gen.field_reconciler import ValidationMode

SYSTEM_PREAMBLE = (
    "You are an expert language learning flashcard generator for Anki. "
    "Your job is to create high-quality, accurate flashcards that help learners study effectively.\n"
    "\n"
    "Rules you MUST follow:\n"
    "1. Output ONLY a single valid JSON object. No markdown, no explanation, no extra text.\n"
    "2. Use the EXACT field names provided - do not rename, abbreviate, or misspell them.\n"
    "3. {fill_rule}\n"
    "4. For Japanese content: use proper kanji/kana, provide accurate furigana readings, "
    "and natural example sentences.\n"
    "5. For grammar points: include the grammatical structure, its meaning, JLPT level if "
    "applicable, and a natural example.\n"
    "6. For vocabulary: include the word, reading, meaning, part of speech, and a contextual "
    "example sentence.\n"
    "7. Keep content concise but complete - each field should serve the learner."
)

FILL_RULES = {
    ValidationMode.STRICT: "Every field must be filled with useful content. Never leave a field empty.",
    ValidationMode.OPTIONAL: (
        "Fill only the fields that are relevant to this item. "
        "Use an empty string for fields that do not apply."
    ),
}

RESPONSE_RULES = {
    ValidationMode.STRICT: (
        "Respond with a single JSON object using exactly those keys. "
        "Every value must be a non-empty string with real content."
    ),
    ValidationMode.OPTIONAL: (
        "Respond with a single JSON object using exactly those keys. "
        "Values must be strings; leave irrelevant fields as \"\"."
    ),
}


def format_fields(fields: Sequence[str]) -> str:
    return ", ".join(f'"{field}"' for field in fields)


def _preamble(mode: ValidationMode) -> str:
    return SYSTEM_PREAMBLE.format(fill_rule=FILL_RULES[mode])


def build_prompt(request) -> str:
    """Prompt for a single card described by `request.description`."""
    return (
        f"{_preamble(request.mode)}\n\n"
        "---\n"
        "Task: Generate a flashcard.\n"
        f"Topic: {request.description}\n"
        f"Note type: {request.note_type}\n"
        f"Required JSON keys: [{format_fields(request.fields)}]\n\n"
        f"{RESPONSE_RULES[request.mode]}\n"
        "Now generate the JSON:"
    )


def build_next_prompt(request, used_items: Sequence[str]) -> str:
    """
    Prompt for the next item in a series.

    Every label in `used_items` is listed as already generated so the
    model picks something new.
    """
    used = ", ".join(used_items) if used_items else "none yet"
    return (
        f"{_preamble(request.mode)}\n\n"
        "---\n"
        "Task: Generate the NEXT item in a series. Pick one that has NOT been generated yet.\n"
        f"Topic: {request.description}\n"
        f"Note type: {request.note_type}\n"
        f"Required JSON keys: [{format_fields(request.fields)}]\n\n"
        f"Already generated (DO NOT repeat any of these):\n{used}\n\n"
        f"{RESPONSE_RULES[request.mode]}\n"
        "Now generate the JSON for the next item:"
    )
