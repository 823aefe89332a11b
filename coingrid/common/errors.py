from __future__ import annotations


class CoinGridError(Exception):
    """Base class for engine errors surfaced to callers."""


class UnknownPlayer(CoinGridError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown player: {self.name!r}"


class StoreUnavailable(CoinGridError):
    """The backing state store failed or is unreachable.

    The outcome of the operation that raised it is unknown; the engine never
    retries on its behalf.
    """
