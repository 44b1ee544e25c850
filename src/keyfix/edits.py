"""Edit scripts: pure insertions over an immutable byte buffer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Sequence

from .errors import PatchError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Edit:
    """Insert ``text`` immediately before the byte at ``offset``."""

    offset: int
    text: bytes


@dataclass(slots=True)
class EditScript:
    """Unsorted collection of insertions produced while walking one module.

    Edits never delete or replace bytes. ``apply`` merges them with the
    untouched spans of the original buffer in a single ascending pass.
    """

    edits: List[Edit] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.edits)

    def __iter__(self) -> Iterator[Edit]:
        return iter(self.edits)

    def insert(self, offset: int, text: str | bytes, *, encoding: str = "utf-8") -> Edit:
        """Record one insertion; ``text`` is encoded with the file's encoding."""
        payload = text.encode(encoding) if isinstance(text, str) else bytes(text)
        edit = Edit(offset=offset, text=payload)
        self.edits.append(edit)
        return edit

    def insert_keywords(self, offsets: Sequence[int], names: Sequence[str], *, encoding: str = "utf-8") -> None:
        """Prefix each argument starting at ``offsets[i]`` with ``names[i]=``."""
        if len(offsets) != len(names):
            raise PatchError(
                "Keyword insertion needs one name per argument.",
                details={"offsets": list(offsets), "names": list(names)},
            )
        for offset, name in zip(offsets, names):
            self.insert(offset, f"{name}=", encoding=encoding)

    def ordered(self) -> List[Edit]:
        # sorted() is stable, so equal offsets keep insertion order.
        return sorted(self.edits, key=lambda edit: edit.offset)

    def apply(self, original: bytes) -> bytes:
        """Return ``original`` with every insertion spliced in."""
        size = len(original)
        chunks: List[bytes] = []
        cursor = 0
        for edit in self.ordered():
            if edit.offset < 0 or edit.offset > size:
                raise PatchError(
                    f"Edit offset {edit.offset} lies outside a {size}-byte buffer.",
                    details={"offset": edit.offset, "size": size},
                )
            chunks.append(original[cursor:edit.offset])
            chunks.append(edit.text)
            cursor = edit.offset
        chunks.append(original[cursor:])
        LOGGER.debug("Applied %d edit(s) to %d byte(s)", len(self.edits), size)
        return b"".join(chunks)


__all__ = ["Edit", "EditScript"]
