from __future__ import annotations

import gzip
import logging
import time
import zlib
from pathlib import Path
from typing import Optional, Union

from ouiwatch.errors import ParseError
from ouiwatch.log import get_logger
from ouiwatch.oui import OuiEntry, PrefixIndex, parse_manuf

_GZIP_MAGIC = b"\x1f\x8b"


def decompress(raw: bytes) -> str:
    """Return the text of a manuf payload, gunzipping it when needed."""
    try:
        if raw[:2] == _GZIP_MAGIC:
            raw = gzip.decompress(raw)
        return raw.decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as exc:
        raise ParseError(f"unreadable manuf payload: {exc}") from exc


class VendorResolver:
    """Serves lookups from the most recently built :class:`PrefixIndex`.

    A rebuild parses into a fresh index and publishes it with a single
    attribute assignment; readers grab the reference once per lookup, so
    they always see a complete index, either the old one or the new one.
    """

    def __init__(self, manuf_path: Union[str, Path], logger: Optional[logging.Logger] = None) -> None:
        self.manuf_path = Path(manuf_path)
        self.logger = logger or get_logger("resolver")
        self._index = PrefixIndex.empty()
        self._built_at: Optional[float] = None

    @property
    def index(self) -> PrefixIndex:
        return self._index

    @property
    def ready(self) -> bool:
        return self._built_at is not None

    @property
    def built_at(self) -> Optional[float]:
        return self._built_at

    def build(self, raw: bytes) -> PrefixIndex:
        index = parse_manuf(decompress(raw))
        self._index = index
        self._built_at = time.time()
        self.logger.info(
            "Built OUI index with %d entries (prefix lengths: %s)",
            len(index), ",".join(str(bits) for bits in index.lengths) or "none",
        )
        return index

    def rebuild(self) -> PrefixIndex:
        """Re-read the manuf file from disk and swap in the new index."""
        try:
            raw = self.manuf_path.read_bytes()
        except OSError as exc:
            raise ParseError(f"cannot read {self.manuf_path}: {exc}") from exc
        return self.build(raw)

    def lookup(self, mac: str) -> Optional[OuiEntry]:
        return self._index.lookup(mac)

    def vendor(self, mac: str) -> Optional[str]:
        entry = self.lookup(mac)
        return entry.organization if entry else None
