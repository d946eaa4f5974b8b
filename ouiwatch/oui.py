"""Variable-length prefix index over the 48-bit MAC address space.

Entries from the Wireshark ``manuf`` file may claim any prefix length from
1 to 48 bits (``00:1B:C5:00:00:00/36`` style MA-S blocks sit beside the
classic 24-bit OUIs).  Entries are bucketed by prefix length and looked up
longest length first, so a more specific block always wins over the OUI
that contains it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from ouiwatch.log import get_logger

logger = get_logger("oui")

MAC_BITS = 48
_SEPARATORS = re.compile(r"[-:.]")
_HEX = re.compile(r"[0-9A-F]+")
_QUERY_DIGITS = (12, 10, 8, 6)


@dataclass(frozen=True)
class OuiEntry:
    prefix: str
    organization: str
    annotation: str
    bits: int
    value: int

    def to_dict(self) -> Dict[str, str]:
        return {
            "prefix": self.prefix,
            "organization": self.organization,
            "annotation": self.annotation,
        }


def _compact(text: str) -> str:
    return _SEPARATORS.sub("", text).upper()


def parse_prefix_token(token: str) -> Tuple[int, int]:
    """Return ``(bits, value)`` for a ``HEXDIGITS[/BITCOUNT]`` token.

    ``value`` holds only the significant bits, right-aligned, so it can be
    compared directly against ``address >> (48 - bits)``.
    """
    hex_part, slash, bits_part = token.partition("/")
    digits = _compact(hex_part)
    if not digits or not _HEX.fullmatch(digits):
        raise ValueError(f"invalid prefix digits: {token!r}")
    width = len(digits) * 4
    if slash:
        try:
            bits = int(bits_part, 10)
        except ValueError as exc:
            raise ValueError(f"invalid prefix length: {token!r}") from exc
    else:
        bits = width
    if not 1 <= bits <= MAC_BITS:
        raise ValueError(f"prefix length out of range: {token!r}")

    value = int(digits, 16)
    if width > bits:
        value >>= width - bits
    elif width < bits:
        # Fewer digits than the mask covers: treat them as the high bits.
        value <<= bits - width
    return bits, value


def parse_line(line: str) -> Optional[OuiEntry]:
    """Parse one manuf line.  Blank lines and comments yield ``None``."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if "\t" in line:
        parts = [part.strip() for part in line.split("\t")]
        annotation = " ".join(part for part in parts[2:] if part)
    else:
        parts = line.split(None, 2)
        annotation = parts[2] if len(parts) > 2 else ""
    if len(parts) < 2 or not parts[1]:
        raise ValueError(f"expected prefix and name: {line!r}")
    bits, value = parse_prefix_token(parts[0])
    return OuiEntry(
        prefix=parts[0],
        organization=parts[1],
        annotation=annotation,
        bits=bits,
        value=value,
    )


def normalize_mac(mac: str) -> Optional[Tuple[int, int]]:
    """Return ``(value, width)`` with ``value`` left-aligned to 48 bits.

    Accepts 12, 10, 8 or 6 hex digits with optional ``:``, ``-`` or ``.``
    separators.  Anything else returns ``None``.
    """
    if not isinstance(mac, str):
        return None
    digits = _compact(mac.strip())
    if len(digits) not in _QUERY_DIGITS or not _HEX.fullmatch(digits):
        return None
    width = len(digits) * 4
    return int(digits, 16) << (MAC_BITS - width), width


class PrefixIndex:
    """Immutable mapping of prefix length -> prefix value -> entry."""

    def __init__(self, buckets: Dict[int, Dict[int, OuiEntry]]) -> None:
        self._buckets = buckets
        self._lengths = tuple(sorted(buckets, reverse=True))

    @classmethod
    def empty(cls) -> "PrefixIndex":
        return cls({})

    @property
    def lengths(self) -> Tuple[int, ...]:
        """Prefix lengths present in the index, longest first."""
        return self._lengths

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())

    def entries(self) -> Iterator[OuiEntry]:
        for bits in self._lengths:
            yield from self._buckets[bits].values()

    def lookup(self, mac: str) -> Optional[OuiEntry]:
        normalized = normalize_mac(mac)
        if normalized is None:
            return None
        address, width = normalized
        for bits in self._lengths:
            if bits > width:
                continue
            hit = self._buckets[bits].get(address >> (MAC_BITS - bits))
            if hit is not None:
                return hit
        return None


def parse_manuf(text: str) -> PrefixIndex:
    """Build a :class:`PrefixIndex` from the text of a manuf file.

    Malformed lines are skipped.  A prefix that appears twice keeps the
    last definition.
    """
    buckets: Dict[int, Dict[int, OuiEntry]] = {}
    skipped = 0
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        try:
            entry = parse_line(raw_line)
        except ValueError as exc:
            skipped += 1
            logger.debug("Skipping manuf line %d: %s", lineno, exc)
            continue
        if entry is None:
            continue
        buckets.setdefault(entry.bits, {})[entry.value] = entry

    index = PrefixIndex(buckets)
    logger.debug(
        "Parsed %d manuf entries across %d prefix lengths (%d malformed lines skipped)",
        len(index), len(index.lengths), skipped,
    )
    return index
