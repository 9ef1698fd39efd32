"""
SMBFuzzer Engine Module

Handshake state machine, fuzzing directive and driver loop.
"""

from smbfuzzer.engine.directive import FuzzingDirective
from smbfuzzer.engine.driver import FuzzDriver, RunSummary
from smbfuzzer.engine.state_machine import HandshakeTrace, Transition, reach, step, trace_to
from smbfuzzer.engine.states import LEGALITY, HandshakeState, is_legal, path_to

__all__ = [
    "LEGALITY",
    "FuzzDriver",
    "FuzzingDirective",
    "HandshakeTrace",
    "HandshakeState",
    "RunSummary",
    "Transition",
    "is_legal",
    "path_to",
    "reach",
    "step",
    "trace_to",
]
