"""
SMBFuzzer Random Source

Injectable wrapper around `random.Random`. A seed makes a fuzzing run
reproducible; tests pass their own instance.
"""

from __future__ import annotations

import random
from enum import Enum
from typing import List, Optional, Sequence, Type, TypeVar

import attrs

from smbfuzzer.core.fields import flag_union


# Upper bound (exclusive) for randomly sized fields
MAX_RANDOM_LENGTH = 10000

# Upper bound (exclusive) for the number of values drawn from a domain
MAX_DRAWS = 100

T = TypeVar("T")


@attrs.define
class RandomSource:
    """Seedable source of random bytes and domain samples."""

    seed: Optional[int] = None
    _random: random.Random = attrs.field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._random = random.Random(self.seed)

    def bytes(self, length: int) -> bytes:
        """`length` uniformly random bytes."""
        return self._random.randbytes(length)

    def random_length_bytes(self, cap: int = MAX_RANDOM_LENGTH) -> bytes:
        """Random bytes of uniformly random length in [0, cap)."""
        return self.bytes(self._random.randrange(cap))

    def randrange(self, stop: int) -> int:
        return self._random.randrange(stop)

    def choice(self, values: Sequence[T]) -> T:
        return self._random.choice(values)

    def draws(self, values: Sequence[T], upper: int = MAX_DRAWS) -> List[T]:
        """Between 0 and upper - 1 independent draws from `values`."""
        return [self.choice(values) for _ in range(self.randrange(upper))]

    def enum_member(self, enum_type: Type[Enum]) -> Enum:
        """One member of an enumeration."""
        return self.choice(list(enum_type.__members__.values()))

    def flag_set(self, flag_type: Type[Enum], upper: int = MAX_DRAWS) -> int:
        """
        Union of a random number of flag draws.

        Drawing the same flag repeatedly has no further effect, so the
        result is a random subset of the flag bits.
        """
        return flag_union(self.draws(list(flag_type.__members__.values()), upper))
