"""
SMBFuzzer Field Mutators

Structure-blind strategies. Both walk a body's WIRE_FIELDS, so they work
for every request type without per-message code; NEGOTIATE additionally
gets its dialect list and padding replaced, and ECHO keeps its
structure size.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

import attrs

from smbfuzzer.fuzzer.random_source import RandomSource
from smbfuzzer.smb2.requests import Echo, Negotiate, RequestBody


FieldFiller = Callable[[Optional[int]], bytes]


def _mutate(body: RequestBody, fill: FieldFiller, rng: RandomSource) -> RequestBody:
    fields = body.WIRE_FIELDS
    if isinstance(body, Echo):
        fields = tuple(f for f in fields if f[0] != "structure_size")

    changes: Dict[str, object] = {name: fill(width) for name, width in fields}

    if isinstance(body, Negotiate):
        changes["dialects"] = (rng.random_length_bytes(),)
        changes["padding"] = rng.random_length_bytes()
        changes["negotiate_context_list"] = ()

    return attrs.evolve(body, **changes)


def random_fields(body: RequestBody, rng: RandomSource) -> RequestBody:
    """
    Replace every field with random bytes of its declared width.

    Variable-length buffers get a random length. Offsets and lengths are
    not kept consistent with the buffer.
    """

    def fill(width: Optional[int]) -> bytes:
        return rng.random_length_bytes() if width is None else rng.bytes(width)

    return _mutate(body, fill, rng)


def completely_random(body: RequestBody, rng: RandomSource) -> RequestBody:
    """Replace every field, fixed-width or not, with random bytes of random length."""
    return _mutate(body, lambda _: rng.random_length_bytes(), rng)
