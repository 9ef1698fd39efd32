"""
SMBFuzzer Handshake State Machine

Drives a fresh connection through the SMB2 handshake to a chosen state.

Reaching a state is a fold of single-step functions over the carried
identifiers: every step sends one default request, reads one response
and returns the identifiers updated with whatever that response hands
forward. The accumulator is a frozen HandshakeTrace that also records
each Transition. No session object outlives the connection.

Failure semantics:
- A failed write is a no-op step (the transport logs `connection_reset`)
- A missing response leaves the identifiers unchanged
- A response that cannot be decoded, or a later step that needs a value
  no response supplied, raises DecodeError
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import reduce
from typing import Any, Dict, List, Optional, Tuple

import attrs
import structlog
from returns.result import Failure

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.core.exceptions import DecodeError, StateError
from smbfuzzer.engine.states import ENTRY_MESSAGES, HANDSHAKE_ORDER, HandshakeState
from smbfuzzer.gss import parse_challenge
from smbfuzzer.smb2.builders import CarriedIds, build_default_body, build_request_header
from smbfuzzer.smb2.codec import encode, split_frame
from smbfuzzer.smb2.requests import MessageType
from smbfuzzer.smb2.responses import SessionSetupResponse, extract_file_id
from smbfuzzer.transport.connection import Transport

logger = structlog.get_logger()


# =============================================================================
# TRANSITION HISTORY
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Transition:
    """Immutable record of one handshake step."""

    from_state: HandshakeState
    to_state: HandshakeState
    message: MessageType
    timestamp: datetime
    response_length: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "from_state": self.from_state.name,
            "to_state": self.to_state.name,
            "message": self.message.value,
            "timestamp": self.timestamp.isoformat(),
            "response_length": self.response_length,
        }


# =============================================================================
# SINGLE STEPS
# =============================================================================


def absorb_response(message: MessageType, response: bytes, ids: CarriedIds) -> CarriedIds:
    """
    Carry forward what a response to `message` supplies.

    Raises:
        DecodeError: If the response cannot be decoded
    """
    if message == MessageType.CLOSE:
        return attrs.evolve(ids, file_id=None)
    if not response:
        return ids

    header, body = split_frame(response)

    if message == MessageType.SESSION_SETUP_NEGOTIATE:
        security_buffer = SessionSetupResponse.from_bytes(body).buffer
        challenge = parse_challenge(security_buffer)
        if isinstance(challenge, Failure):
            raise challenge.failure()
        return attrs.evolve(ids, session_id=header.session_id, challenge=challenge.unwrap())

    if message == MessageType.TREE_CONNECT:
        return attrs.evolve(ids, tree_id=header.tree_id)

    if message == MessageType.CREATE:
        file_id = extract_file_id(body)
        if file_id is None:
            raise DecodeError(f"CREATE response too short for a file id: {len(body)} bytes")
        return attrs.evolve(ids, file_id=file_id)

    return ids


def send_default(
    message: MessageType,
    transport: Transport,
    ids: CarriedIds,
    config: FuzzerConfig,
) -> bytes:
    """
    Send the default request for `message` and read the reply.

    Returns:
        The response bytes; empty when the write failed or nothing arrived

    Raises:
        SMBFuzzerError: If the request needs a carried value that is absent
    """
    body = build_default_body(message, ids, config)
    if isinstance(body, Failure):
        raise body.failure()

    frame = encode(build_request_header(message, ids), body.unwrap())
    if not transport.send(frame):
        return b""

    response = transport.receive()
    if not response:
        logger.info("response_absent", message=message.value)
    return response


def exchange(
    message: MessageType,
    transport: Transport,
    ids: CarriedIds,
    config: FuzzerConfig,
) -> Tuple[bytes, CarriedIds]:
    """Send the default request for `message`; return the reply and the updated ids."""
    response = send_default(message, transport, ids, config)
    return response, absorb_response(message, response, ids)


def step(
    message: MessageType,
    transport: Transport,
    ids: CarriedIds,
    config: FuzzerConfig,
) -> CarriedIds:
    """One handshake transition: send the default request, absorb the reply."""
    return exchange(message, transport, ids, config)[1]


def reach(state: HandshakeState, transport: Transport, config: FuzzerConfig) -> CarriedIds:
    """Replay the handshake from scratch up to `state`."""
    return trace_to(state, transport, config).ids


# =============================================================================
# TRACED HANDSHAKE
# =============================================================================


@attrs.define(frozen=True, slots=True)
class HandshakeTrace:
    """
    Fold accumulator: the state reached, the carried ids and the
    transitions taken so far.
    """

    state: HandshakeState = HandshakeState.INITIAL
    ids: CarriedIds = attrs.Factory(CarriedIds)
    transitions: Tuple[Transition, ...] = ()

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [transition.to_dict() for transition in self.transitions]


def advance(trace: HandshakeTrace, transport: Transport, config: FuzzerConfig) -> HandshakeTrace:
    """
    Take the next step in handshake order and record it.

    Raises:
        StateError: If the handshake is already complete
    """
    position = HANDSHAKE_ORDER.index(trace.state)
    if position + 1 >= len(HANDSHAKE_ORDER):
        raise StateError(f"No transition after state {trace.state.name}")

    next_state = HANDSHAKE_ORDER[position + 1]
    message = ENTRY_MESSAGES[next_state]
    response, ids = exchange(message, transport, trace.ids, config)

    logger.info(
        "state_transition",
        from_state=trace.state.name,
        to_state=next_state.name,
        message=message.value,
        response_length=len(response),
    )
    transition = Transition(
        from_state=trace.state,
        to_state=next_state,
        message=message,
        timestamp=datetime.now(timezone.utc),
        response_length=len(response),
    )
    return HandshakeTrace(
        state=next_state, ids=ids, transitions=trace.transitions + (transition,)
    )


def trace_to(
    state: HandshakeState,
    transport: Transport,
    config: FuzzerConfig,
    start: Optional[HandshakeTrace] = None,
) -> HandshakeTrace:
    """
    Fold `advance` from `start` (a fresh connection by default) up to `state`.

    Raises:
        StateError: If `state` lies behind the start state
    """
    start = start or HandshakeTrace()
    steps = HANDSHAKE_ORDER.index(state) - HANDSHAKE_ORDER.index(start.state)
    if steps < 0:
        raise StateError(f"Cannot go back from {start.state.name} to {state.name}")

    trace = reduce(lambda acc, _: advance(acc, transport, config), range(steps), start)
    logger.info("state_reached", state=state.name, transitions=len(trace.transitions))
    return trace
