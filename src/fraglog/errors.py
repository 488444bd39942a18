from __future__ import annotations


class FraglogError(Exception):
    pass


class ParseFailure(FraglogError):
    """A line could not be turned into an event."""


class GrammarRejected(ParseFailure):
    """The primary grammar did not accept the line at all."""


class Unclassifiable(ParseFailure):
    """Grammar rejected the line and no heuristic rule matched it."""


class BlockMalformed(FraglogError):
    """An assembled JSON block did not parse as an object."""


class StorageError(FraglogError):
    pass
