"""
SMBFuzzer Fuzzing Strategies
"""

from __future__ import annotations

from enum import Enum


class FuzzingStrategy(Enum):
    """
    How a request body is mutated.

    - PREDEFINED: valid skeleton; enumerated and bit-field values are
      sampled from their legal domains and dependent lengths, offsets and
      counts are recomputed
    - RANDOM_FIELDS: every field gets random bytes of its declared width
    - COMPLETELY_RANDOM: every field gets random bytes of random length
    """

    PREDEFINED = "predefined"
    RANDOM_FIELDS = "random_fields"
    COMPLETELY_RANDOM = "completely_random"
