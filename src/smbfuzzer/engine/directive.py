"""
SMBFuzzer Fuzzing Directive
"""

from __future__ import annotations

from typing import Optional

import attrs
from attrs import validators

from smbfuzzer.core.config import DEFAULT_ITERATIONS
from smbfuzzer.core.exceptions import ValidationError
from smbfuzzer.engine.states import HandshakeState, is_legal
from smbfuzzer.fuzzer.strategy import FuzzingStrategy
from smbfuzzer.smb2.requests import MessageType


@attrs.define(frozen=True, slots=True)
class FuzzingDirective:
    """
    What to fuzz, how, and where.

    Built once from user input and consumed once per connection attempt:
    reach `state`, then send `iterations` bodies of kind `message`
    mutated with `strategy`.
    """

    message: MessageType
    state: HandshakeState
    strategy: FuzzingStrategy
    iterations: int = attrs.field(default=DEFAULT_ITERATIONS, validator=validators.ge(1))

    @classmethod
    def create(
        cls,
        message: Optional[MessageType],
        state: Optional[HandshakeState],
        strategy: Optional[FuzzingStrategy],
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "FuzzingDirective":
        """
        Build a validated directive.

        Raises:
            ValidationError: If a selection is missing, the iteration count
                is not positive, or the message is not legal in the state
        """
        if message is None:
            raise ValidationError("No message selected")
        if state is None:
            raise ValidationError("No state selected")
        if strategy is None:
            raise ValidationError("No fuzzing strategy selected")
        if iterations < 1:
            raise ValidationError(f"Iterations must be positive, got {iterations}")
        if not is_legal(message, state):
            raise ValidationError(
                f"Message {message.value} cannot be fuzzed in state {state.value}"
            )
        return cls(message=message, state=state, strategy=strategy, iterations=iterations)
