"""
SMBFuzzer Handshake States

The linear SMB2 handshake and the table of which requests may be fuzzed
in which state.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Tuple

from smbfuzzer.smb2.requests import MessageType


class HandshakeState(Enum):
    """
    Handshake position reached before fuzzing begins.

    Each state is entered by sending one default request; reaching a
    state replays every earlier request in order.
    """

    INITIAL = "init"
    NEGOTIATE = "neg"
    SESSION_SETUP_NEGOTIATE = "session_setup_neg"
    SESSION_SETUP_AUTHENTICATE = "session_setup_auth"
    TREE_CONNECT = "tree"
    CREATE = "create"
    CLOSE = "close"


HANDSHAKE_ORDER: Tuple[HandshakeState, ...] = tuple(HandshakeState)

# Request that moves the handshake into each state
ENTRY_MESSAGES: Dict[HandshakeState, MessageType] = {
    HandshakeState.NEGOTIATE: MessageType.NEGOTIATE,
    HandshakeState.SESSION_SETUP_NEGOTIATE: MessageType.SESSION_SETUP_NEGOTIATE,
    HandshakeState.SESSION_SETUP_AUTHENTICATE: MessageType.SESSION_SETUP_AUTHENTICATE,
    HandshakeState.TREE_CONNECT: MessageType.TREE_CONNECT,
    HandshakeState.CREATE: MessageType.CREATE,
    HandshakeState.CLOSE: MessageType.CLOSE,
}

# ECHO is legal everywhere and is added by is_legal
LEGALITY: Dict[HandshakeState, FrozenSet[MessageType]] = {
    HandshakeState.INITIAL: frozenset({MessageType.NEGOTIATE}),
    HandshakeState.NEGOTIATE: frozenset({MessageType.SESSION_SETUP_NEGOTIATE}),
    HandshakeState.SESSION_SETUP_NEGOTIATE: frozenset({MessageType.SESSION_SETUP_AUTHENTICATE}),
    HandshakeState.SESSION_SETUP_AUTHENTICATE: frozenset({MessageType.TREE_CONNECT}),
    HandshakeState.TREE_CONNECT: frozenset({MessageType.CREATE}),
    HandshakeState.CREATE: frozenset({MessageType.QUERY_INFO, MessageType.CLOSE}),
    HandshakeState.CLOSE: frozenset({MessageType.CREATE}),
}


def is_legal(message: MessageType, state: HandshakeState) -> bool:
    """True iff `message` may be fuzzed once `state` has been reached."""
    return message == MessageType.ECHO or message in LEGALITY[state]


def path_to(state: HandshakeState) -> Tuple[MessageType, ...]:
    """Requests to send, in order, to reach `state` from a fresh connection."""
    states = HANDSHAKE_ORDER[1 : HANDSHAKE_ORDER.index(state) + 1]
    return tuple(ENTRY_MESSAGES[s] for s in states)
