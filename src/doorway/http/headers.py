"""Immutable, case-insensitive HTTP headers and ``Accept`` parsing.

``Headers`` implements ``Mapping[str, str]``. It stores raw byte pairs from
the ASGI scope and decodes on access.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value.
    ``get_list`` returns all values for a header.
    """

    __slots__ = ("_raw",)

    def __init__(self, raw: tuple[tuple[bytes, bytes], ...] = ()) -> None:
        object.__setattr__(self, "_raw", raw)

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower().encode("latin-1")
        for name, value in self._raw:
            if name.lower() == key_lower:
                return value.decode("latin-1")
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower().encode("latin-1")
        return any(name.lower() == key_lower for name, _ in self._raw)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._raw:
            key = name.decode("latin-1").lower()
            if key not in seen:
                seen.add(key)
                yield key

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        key_lower = key.lower().encode("latin-1")
        return [value.decode("latin-1") for name, value in self._raw if name.lower() == key_lower]

    @property
    def raw(self) -> tuple[tuple[bytes, bytes], ...]:
        """Access raw header byte pairs for ASGI compatibility."""
        return self._raw


# ---------------------------------------------------------------------------
# Accept negotiation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MediaRange:
    """One entry of an ``Accept`` header, e.g. ``text/*;q=0.8``."""

    type: str
    subtype: str
    quality: float = 1.0

    def specificity(self, media_type: str) -> int:
        """How specifically this range matches *media_type*; ``-1`` if not at all."""
        main, _, sub = media_type.partition("/")
        if self.type == "*":
            return 0
        if self.type != main:
            return -1
        if self.subtype == "*":
            return 1
        return 2 if self.subtype == sub else -1


def parse_accept(value: str) -> tuple[MediaRange, ...]:
    """Parse an ``Accept`` header into media ranges.

    Malformed entries are skipped; a malformed ``q`` counts as ``1``.
    """
    ranges: list[MediaRange] = []
    for part in value.split(","):
        media, *params = (p.strip() for p in part.split(";"))
        if "/" not in media:
            continue
        main, _, sub = media.lower().partition("/")
        quality = 1.0
        for param in params:
            name, _, raw = param.partition("=")
            if name.strip().lower() == "q":
                try:
                    quality = float(raw)
                except ValueError:
                    quality = 1.0
        ranges.append(MediaRange(main, sub or "*", quality))
    return tuple(ranges)


def best_match(accept: str | None, offers: tuple[str, ...]) -> str | None:
    """Pick the offer the client prefers most.

    A missing ``Accept`` header accepts anything, so the first offer wins.
    Each offer takes the quality of the most specific range matching it;
    ties go to the earlier offer. Returns ``None`` when nothing is acceptable.
    """
    if not offers:
        return None
    if not accept or not accept.strip():
        return offers[0]

    ranges = parse_accept(accept)
    best: str | None = None
    best_quality = 0.0
    for offer in offers:
        quality = 0.0
        specificity = -1
        for media_range in ranges:
            score = media_range.specificity(offer.lower())
            if score > specificity:
                specificity = score
                quality = media_range.quality
        if specificity >= 0 and quality > best_quality:
            best = offer
            best_quality = quality
    return best
