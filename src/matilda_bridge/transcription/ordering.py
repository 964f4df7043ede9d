"""Transcript reconstruction from provider item chains.

Providers may deliver results for different utterances interleaved, so the
transcript is rebuilt by walking ``previous_item_id`` links instead of
trusting arrival order. Items whose predecessor never arrived start a new
chain; chains are laid out in the order their heads arrived.
"""

import re

from .types import TranscriptionItem

_SPACE_BEFORE_PUNCTUATION = re.compile(r"\s+([,.;:!?])")


class TranscriptOrderer:
    """Collects partial and final items and returns them in chain order."""

    def __init__(self) -> None:
        self._items: dict[str, TranscriptionItem] = {}
        self._arrival: list[str] = []

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item: TranscriptionItem) -> None:
        """Record an item; a final result is never replaced by a later partial."""
        existing = self._items.get(item.item_id)
        if existing is None:
            self._arrival.append(item.item_id)
        elif existing.is_final and not item.is_final:
            return
        self._items[item.item_id] = item

    def ordered(self, include_partial: bool = False) -> list[TranscriptionItem]:
        """Items in transcript order.

        Args:
            include_partial: Also include utterances that have no final result yet

        """
        selected = [
            self._items[item_id]
            for item_id in self._arrival
            if include_partial or self._items[item_id].is_final
        ]
        known = {item.item_id for item in selected}

        children: dict[str, list[TranscriptionItem]] = {}
        heads: list[TranscriptionItem] = []
        for item in selected:
            previous = item.previous_item_id
            if previous and previous in known and previous != item.item_id:
                children.setdefault(previous, []).append(item)
            else:
                heads.append(item)

        result: list[TranscriptionItem] = []
        visited: set[str] = set()
        for head in heads:
            stack = [head]
            while stack:
                item = stack.pop()
                if item.item_id in visited:
                    continue
                visited.add(item.item_id)
                result.append(item)
                stack.extend(reversed(children.get(item.item_id, [])))

        # Items caught in a cycle have no head; keep them in arrival order
        result.extend(item for item in selected if item.item_id not in visited)
        return result

    def text(self, include_partial: bool = False) -> str:
        """The ordered transcript as one string."""
        parts = [item.text.strip() for item in self.ordered(include_partial) if item.text.strip()]
        return _SPACE_BEFORE_PUNCTUATION.sub(r"\1", " ".join(parts))

    def clear(self) -> None:
        self._items.clear()
        self._arrival.clear()
