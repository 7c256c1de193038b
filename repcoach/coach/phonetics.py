"""User-specific phonetic mappings for voice recognition.

Some users get the same mishearing over and over ("necks" for six, "dun"
for done). Each mapping points an alternative spelling at a canonical value
in one of two categories: "number" (rep counts) or "command" (done, skip...).
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional

from repcoach.utils.json_store import JsonDocument

logger = logging.getLogger("repcoach.phonetics")

CATEGORIES = ("number", "command")


@dataclass
class PhoneticMapping:
    alternative: str
    canonical: str
    category: str = "number"
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class PhoneticBook:
    """Per-user phonetic mappings persisted in a JSON document.

    Layout on disk: {"<user>": [{"alternative", "canonical", "category", "created_at"}, ...]}
    """

    def __init__(self, document: JsonDocument, user: str = "default"):
        self._doc = document
        self._user = user
        self._mappings: list[PhoneticMapping] = []
        self.load()

    def load(self) -> None:
        raw = self._doc.get(self._user, [])
        mappings = []
        for item in raw:
            try:
                mappings.append(PhoneticMapping(**item))
            except TypeError:
                logger.warning("Skipping malformed phonetic mapping: %r", item)
        self._mappings = mappings
        logger.debug("Loaded %d custom phonetics for %s", len(mappings), self._user)

    def _save(self) -> None:
        self._doc.set(self._user, [asdict(m) for m in self._mappings])

    def add(self, alternative: str, canonical: str, category: str = "number") -> PhoneticMapping:
        """Add a mapping, or update it if the alternative already exists."""
        alternative = alternative.lower().strip()
        canonical = canonical.lower().strip()
        category = (category or "number").lower().strip()
        if not alternative or not canonical:
            raise ValueError("alternative and canonical must be non-empty")
        if category not in CATEGORIES:
            raise ValueError(f"Unknown phonetic category '{category}' (expected one of {', '.join(CATEGORIES)})")

        existing = self.find(alternative)
        if existing is not None:
            existing.canonical = canonical
            existing.category = category
            logger.info("Updated phonetic mapping: %s -> %s", alternative, canonical)
            self._save()
            return existing

        mapping = PhoneticMapping(alternative=alternative, canonical=canonical, category=category)
        self._mappings.append(mapping)
        logger.info("Added phonetic mapping: %s -> %s", alternative, canonical)
        self._save()
        return mapping

    def remove(self, alternative: str) -> bool:
        alternative = alternative.lower().strip()
        before = len(self._mappings)
        self._mappings = [m for m in self._mappings if m.alternative != alternative]
        if len(self._mappings) == before:
            return False
        self._save()
        return True

    def reset(self) -> None:
        """Drop every custom mapping for this user."""
        self._mappings = []
        self._save()

    def find(self, alternative: str) -> Optional[PhoneticMapping]:
        for m in self._mappings:
            if m.alternative == alternative:
                return m
        return None

    @property
    def mappings(self) -> list[PhoneticMapping]:
        return list(self._mappings)

    def number_map(self) -> dict[str, str]:
        """Word-to-digit table for the normalizer."""
        return {m.alternative: m.canonical for m in self._mappings if m.category == "number"}

    def command_map(self) -> dict[str, str]:
        return {m.alternative: m.canonical for m in self._mappings if m.category == "command"}
