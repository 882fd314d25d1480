"""
Persisted history of generated items.
The history file is a JSON mapping: {"used_items": ["...", ...]}.
"""

import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

from anki_gen.errors import HistoryFormatError, StorageError

logger = logging.getLogger(__name__)


class History:
    """Ordered, append-only list of labels of items already generated."""

    def __init__(self, used_items: Optional[List[str]] = None):
        self.used_items: List[str] = list(used_items or [])

    def append(self, label: str) -> None:
        self.used_items.append(label)

    def to_dict(self) -> dict:
        return {"used_items": list(self.used_items)}

    def __len__(self) -> int:
        return len(self.used_items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.used_items)

    def __eq__(self, other) -> bool:
        if not isinstance(other, History):
            return NotImplemented
        return self.used_items == other.used_items

    def __repr__(self) -> str:
        return f"History({self.used_items!r})"


class HistoryStore:
    """Loads and saves a History at a fixed path."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> History:
        """
        Read the history file.

        A missing or blank file is an empty history. Anything else that is
        not a valid history raises HistoryFormatError.
        """
        if not self.path.exists():
            logger.debug(f"No history at {self.path}, starting empty")
            return History()

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = f.read()
        except OSError as e:
            raise StorageError(f"Could not read history file {self.path}: {e}") from e

        if not data.strip():
            return History()

        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as e:
            raise HistoryFormatError(f"History file {self.path} is not valid JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise HistoryFormatError(f"History file {self.path} must contain a JSON object")

        if "used_items" not in parsed:
            raise HistoryFormatError(f"History file {self.path} has no 'used_items' key")
        items = parsed["used_items"]
        if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
            raise HistoryFormatError(
                f"'used_items' in {self.path} must be a list of strings"
            )

        logger.debug(f"Loaded {len(items)} history items from {self.path}")
        return History(items)

    def save(self, history: History) -> None:
        """Overwrite the history file, creating parent directories first."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump(history.to_dict(), f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise StorageError(f"Could not write history file {self.path}: {e}") from e

        logger.debug(f"Saved {len(history)} history items to {self.path}")
