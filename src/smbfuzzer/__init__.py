"""
SMBFuzzer - Stateful SMB2/NTLM Protocol Fuzzer

Drives a fresh TCP connection through the SMB2 handshake (NEGOTIATE,
SESSION_SETUP with NTLM, TREE_CONNECT, CREATE, CLOSE) to a chosen state,
then sends mutated requests of a chosen kind.

Fuzzing Strategies:
- Predefined: sample enumerated field values, keep the structure valid
- RandomFields: random bytes with each field's declared width
- CompletelyRandom: random bytes of random length in every field

Example Usage:
    from smbfuzzer import FuzzDriver, FuzzerConfig, FuzzingDirective
    from smbfuzzer import FuzzingStrategy, HandshakeState, MessageType

    config = FuzzerConfig(host="10.0.0.5", iterations=50, seed=7)
    directive = FuzzingDirective.create(
        message=MessageType.CREATE,
        state=HandshakeState.TREE_CONNECT,
        strategy=FuzzingStrategy.PREDEFINED,
        iterations=config.iterations,
    )
    summary = FuzzDriver(directive=directive, config=config).run()
"""

from smbfuzzer.core.config import FuzzerConfig
from smbfuzzer.engine.directive import FuzzingDirective
from smbfuzzer.engine.driver import FuzzDriver, RunSummary
from smbfuzzer.engine.states import HandshakeState
from smbfuzzer.fuzzer.strategy import FuzzingStrategy
from smbfuzzer.smb2.requests import MessageType

__version__ = "0.1.0"

__all__ = [
    # Main API
    "FuzzDriver",
    "FuzzingDirective",
    "FuzzerConfig",
    "RunSummary",
    # Selectors
    "FuzzingStrategy",
    "HandshakeState",
    "MessageType",
    # Metadata
    "__version__",
]
