"""
SMBFuzzer Driver

Outer loop: connect, reach the directive's state, send the fuzzed
requests, close, wait, repeat. Only a connect failure stops the loop
(or the optional attempt cap).
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

import attrs
import structlog
from returns.result import Failure

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import ConnectError
from smbfuzzer.engine.directive import FuzzingDirective
from smbfuzzer.engine.state_machine import trace_to
from smbfuzzer.fuzzer.engine import build
from smbfuzzer.fuzzer.random_source import RandomSource
from smbfuzzer.smb2.builders import CarriedIds, build_request_header
from smbfuzzer.smb2.codec import encode
from smbfuzzer.transport.connection import SMBConnection


def connection_for(config: FuzzerConfig) -> SMBConnection:
    return SMBConnection(
        host=config.host,
        port=config.port,
        read_timeout=config.read_timeout,
        read_buffer_size=config.read_buffer_size,
    )


@attrs.define(frozen=True, slots=True)
class RunSummary:
    """Counters for a finished run."""

    attempts: int = 0
    frames_sent: int = 0
    send_failures: int = 0
    responses: int = 0
    stop_reason: Optional[str] = None


@attrs.define
class FuzzDriver:
    """
    Runs a FuzzingDirective against the configured server.

    The connection factory and sleep function are injectable so the loop
    can run against a fake transport.
    """

    directive: FuzzingDirective
    config: FuzzerConfig
    rng: RandomSource = attrs.Factory(
        lambda self: RandomSource(self.config.seed), takes_self=True
    )
    connection_factory: Callable[[FuzzerConfig], Any] = connection_for
    sleep: Callable[[float], None] = time.sleep

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def fuzz(self, connection: Any, ids: CarriedIds) -> RunSummary:
        """
        Send the directive's fuzzed requests over an established connection.

        Raises:
            SMBFuzzerError: If Predefined needs a carried value that is absent
        """
        sent = failures = responses = 0
        message = self.directive.message
        for iteration in range(self.directive.iterations):
            body = build(message, self.directive.strategy, ids, self.config, self.rng)
            if isinstance(body, Failure):
                raise body.failure()

            frame = encode(build_request_header(message, ids), body.unwrap())
            if not connection.send(frame):
                failures += 1
                continue
            sent += 1

            response = connection.receive()
            if response:
                responses += 1
            self._logger.debug(
                "fuzzed_frame_sent",
                iteration=iteration,
                length=len(frame),
                response_length=len(response),
            )

        return RunSummary(frames_sent=sent, send_failures=failures, responses=responses)

    def run_attempt(self) -> RunSummary:
        """
        One connection attempt: connect, reach the state, fuzz, close.

        Raises:
            ConnectError: If the connection cannot be established
        """
        connection = self.connection_factory(self.config)
        connection.connect()
        try:
            trace = trace_to(self.directive.state, connection, self.config)
            self._logger.debug("handshake_trace", transitions=trace.to_dicts())
            return self.fuzz(connection, trace.ids)
        finally:
            connection.close()

    def run(self) -> RunSummary:
        """
        Loop connection attempts.

        Stops when a connection cannot be established or after
        config.max_attempts attempts.
        """
        attempts = sent = failures = responses = 0
        self._logger.info(
            "fuzzing_started",
            host=self.config.host,
            port=self.config.port,
            message=self.directive.message.value,
            state=self.directive.state.value,
            strategy=self.directive.strategy.value,
            iterations=self.directive.iterations,
            seed=self.config.seed,
        )

        stop_reason = "max_attempts"
        while self.config.max_attempts is None or attempts < self.config.max_attempts:
            try:
                result = self.run_attempt()
            except ConnectError as e:
                self._logger.error("fuzzing_stopped", reason="connect_failed", error=e.message)
                stop_reason = "connect_failed"
                break

            attempts += 1
            sent += result.frames_sent
            failures += result.send_failures
            responses += result.responses
            self._logger.info(
                "attempt_finished",
                attempt=attempts,
                frames_sent=result.frames_sent,
                send_failures=result.send_failures,
            )
            self.sleep(self.config.reconnect_delay)

        summary = RunSummary(
            attempts=attempts,
            frames_sent=sent,
            send_failures=failures,
            responses=responses,
            stop_reason=stop_reason,
        )
        self._logger.info("fuzzing_finished", **attrs.asdict(summary))
        return summary
