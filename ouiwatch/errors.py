"""Error taxonomy for the refresh and lookup pipeline.

Every error carries the ``stage`` it was raised in so that listeners and
the web layer can report where a refresh went wrong without inspecting
the exception type.
"""
from __future__ import annotations


class OuiWatchError(Exception):
    stage = "unknown"


class InitError(OuiWatchError):
    """The staleness check failed for a reason other than a missing file."""

    stage = "init"


class DownloadError(OuiWatchError):
    """Transport failure or a response status outside 200-299."""

    stage = "download"


class WriteError(OuiWatchError):
    """Creating the directory, writing the temp file, or renaming it failed."""

    stage = "write"


class ParseError(OuiWatchError):
    """The manuf file could not be read or decompressed."""

    stage = "parse"
