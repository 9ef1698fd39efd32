"""
SMBFuzzer Fuzzing Module

Strategies that turn a request kind into a mutated body.
"""

from smbfuzzer.fuzzer.engine import build
from smbfuzzer.fuzzer.mutators import completely_random, random_fields
from smbfuzzer.fuzzer.predefined import predefined
from smbfuzzer.fuzzer.random_source import MAX_RANDOM_LENGTH, RandomSource
from smbfuzzer.fuzzer.strategy import FuzzingStrategy

__all__ = [
    "MAX_RANDOM_LENGTH",
    "FuzzingStrategy",
    "RandomSource",
    "build",
    "completely_random",
    "predefined",
    "random_fields",
]
