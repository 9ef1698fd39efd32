"""
SMBFuzzer Fuzzing Engine

Single entry point turning (message, strategy, carried ids) into a
request body.
"""

from __future__ import annotations

import structlog
from returns.result import Result, Success

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import SMBFuzzerError
from smbfuzzer.fuzzer.mutators import completely_random, random_fields
from smbfuzzer.fuzzer.predefined import predefined
from smbfuzzer.fuzzer.random_source import RandomSource
from smbfuzzer.fuzzer.strategy import FuzzingStrategy
from smbfuzzer.smb2.builders import CarriedIds
from smbfuzzer.smb2.requests import MessageType, RequestBody

logger = structlog.get_logger()


def build(
    message: MessageType,
    strategy: FuzzingStrategy,
    ids: CarriedIds,
    config: FuzzerConfig,
    rng: RandomSource,
) -> Result[RequestBody, SMBFuzzerError]:
    """
    Build a fuzzed body.

    The structure-blind strategies start from an all-default skeleton of
    the message's body type and never fail. Predefined needs the carried
    values the default request needs.

    Returns:
        Success(body), or Failure when Predefined lacks a carried value
    """
    if strategy == FuzzingStrategy.PREDEFINED:
        result = predefined(message, ids, config, rng)
    elif strategy == FuzzingStrategy.RANDOM_FIELDS:
        result = Success(random_fields(message.body_type(), rng))
    else:
        result = Success(completely_random(message.body_type(), rng))

    logger.debug("body_fuzzed", message=message.value, strategy=strategy.value)
    return result
