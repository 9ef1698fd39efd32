"""
SMBFuzzer Configuration

Target and runtime settings for a fuzzing session.

`EnvSettings` reads SMBFUZZ_* environment variables through
pydantic-settings; `FuzzerConfig` is the frozen value the rest of the
package receives.
"""

from __future__ import annotations

from typing import Any, Optional

import attrs
import pydantic
from attrs import validators
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from smbfuzzer.core.exceptions import ValidationError


ENV_PREFIX = "SMBFUZZ_"

DEFAULT_HOST = "192.168.0.171"
DEFAULT_PORT = 445
DEFAULT_READ_TIMEOUT = 5.0
DEFAULT_READ_BUFFER_SIZE = 300
DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_ITERATIONS = 100


class EnvSettings(BaseSettings):
    """Fuzzer settings from the environment. Empty variables keep their defaults."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, env_ignore_empty=True)

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    read_timeout: float = Field(default=DEFAULT_READ_TIMEOUT, gt=0)
    read_buffer_size: int = Field(default=DEFAULT_READ_BUFFER_SIZE, gt=0)
    reconnect_delay: float = Field(default=DEFAULT_RECONNECT_DELAY, ge=0)
    iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = None
    share_name: str = "share"
    file_name: str = "read_test.txt"
    netname: Optional[str] = None


@attrs.define(frozen=True)
class FuzzerConfig:
    """
    Fuzzing target configuration.

    Attributes:
        host: SMB2 server address
        port: SMB2 server port (default 445)
        read_timeout: Seconds to wait for each response
        read_buffer_size: Maximum bytes read per response
        reconnect_delay: Seconds between connection attempts
        iterations: Fuzzed messages sent per connection
        max_attempts: Stop after this many connections (None = until connect fails)
        seed: Seed for the random source (None = nondeterministic)
        share_name: Share used by TREE_CONNECT
        file_name: File opened by CREATE
        netname: Value of the Netname negotiate context (defaults to host)
    """

    host: str = DEFAULT_HOST
    port: int = attrs.field(
        default=DEFAULT_PORT,
        validator=validators.and_(validators.ge(1), validators.le(65535)),
    )
    read_timeout: float = attrs.field(default=DEFAULT_READ_TIMEOUT, validator=validators.gt(0))
    read_buffer_size: int = attrs.field(
        default=DEFAULT_READ_BUFFER_SIZE, validator=validators.gt(0)
    )
    reconnect_delay: float = attrs.field(
        default=DEFAULT_RECONNECT_DELAY, validator=validators.ge(0)
    )
    iterations: int = attrs.field(default=DEFAULT_ITERATIONS, validator=validators.ge(1))
    max_attempts: Optional[int] = attrs.field(
        default=None, validator=validators.optional(validators.ge(1))
    )
    seed: Optional[int] = None
    share_name: str = "share"
    file_name: str = "read_test.txt"
    netname: Optional[str] = None

    @property
    def share_path(self) -> str:
        """UNC path of the share, e.g. \\\\192.168.0.171\\share."""
        return f"\\\\{self.host}\\{self.share_name}"

    @property
    def effective_netname(self) -> str:
        """Netname advertised in NEGOTIATE."""
        return self.netname or self.host

    @classmethod
    def from_env(cls) -> "FuzzerConfig":
        """
        Build configuration from SMBFUZZ_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ValidationError: If a variable cannot be converted or is out of range
        """
        try:
            settings = EnvSettings()
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid {ENV_PREFIX}* environment: {e}") from e
        return cls(**settings.model_dump())

    def with_overrides(self, **overrides: Any) -> "FuzzerConfig":
        """Return a copy with non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        try:
            return attrs.evolve(self, **changes)
        except ValueError as e:
            raise ValidationError(f"Invalid configuration: {e}") from e
