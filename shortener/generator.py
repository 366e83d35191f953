"""Short code generation from a monotonically increasing number source.

A code is the base-62 rendering of the next value of a shared sequence.
Uniqueness comes from the sequence (each ``nextval`` is atomic in the
database), not from the encoding.

Flow Diagram — generate_code()
==============================
::
    ┌─────────────┐      ┌─────────────┐      ┌─────────────┐
    │ NumberSource │ ───▶ │ base62_encode│ ───▶ │  "1aZ"       │
    │ next_value() │      │ (MSD first) │      │             │
    └─────────────┘      └─────────────┘      └─────────────┘

Key Behaviours
===============
- Alphabet is ``0-9A-Za-z``: ``encode(0) == "0"``, ``encode(61) == "z"``,
  ``encode(62) == "10"``.
- Codes are not padded; the sequence starts at 1.
- ``base62_decode`` is the exact inverse for non-negative integers.

Classes:
    NumberSource:  Protocol for atomic integer sources.
    PostgresSequence:  ``nextval`` on a database sequence.
    InMemorySequence:  Process-local counter for tests.
    CodeGenerator:  Turns the next number into a code.
"""

import itertools
from typing import Protocol

from sqlalchemy import Sequence, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = [
    "BASE62_ALPHABET",
    "CodeGenerator",
    "InMemorySequence",
    "NumberSource",
    "PostgresSequence",
    "base62_decode",
    "base62_encode",
]

BASE62_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_BASE62_INDEX = {char: index for index, char in enumerate(BASE62_ALPHABET)}


def base62_encode(number: int) -> str:
    """Encode a non-negative integer, most significant digit first.

    Example:
        >>> base62_encode(12345)
        '3D7'
    """
    if number < 0:
        raise ValueError("Number must be non-negative")

    if number == 0:
        return BASE62_ALPHABET[0]

    base = len(BASE62_ALPHABET)
    result = []

    while number > 0:
        number, remainder = divmod(number, base)
        result.append(BASE62_ALPHABET[remainder])

    return "".join(result[::-1])


def base62_decode(code: str) -> int:
    if not code:
        raise ValueError("Code must be non-empty")

    base = len(BASE62_ALPHABET)
    number = 0
    for char in code:
        try:
            number = number * base + _BASE62_INDEX[char]
        except KeyError:
            raise ValueError(f"Invalid base62 character: {char!r}") from None
    return number


class NumberSource(Protocol):
    async def next_value(self) -> int: ...


class PostgresSequence:
    """Draws values from a PostgreSQL sequence with ``nextval``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], sequence: Sequence) -> None:
        self._session_factory = session_factory
        self._sequence = sequence

    async def next_value(self) -> int:
        async with self._session_factory() as session:
            value = await session.scalar(select(self._sequence.next_value()))
        return int(value)


class InMemorySequence:
    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    async def next_value(self) -> int:
        return next(self._counter)


class CodeGenerator:
    def __init__(self, source: NumberSource) -> None:
        self._source = source

    async def generate_code(self) -> str:
        return base62_encode(await self._source.next_value())
