"""Exception taxonomy for DNSSEC validation failures.

Every failure raised by the validator is a ``DNSSECError`` subclass carrying an
``ErrorKind``. Callers must treat any raised error as "this response must not
be trusted"; the kind only exists for diagnostics and policy decisions.
"""

from __future__ import annotations

import enum
from typing import List, Optional, Sequence


class ErrorKind(enum.Enum):
    CONFIGURATION = "configuration"
    UNSIGNED = "unsigned"
    BOGUS = "bogus"
    TIME_WINDOW = "time-window"
    CHAIN = "chain-break"
    UNSUPPORTED_ALGORITHM = "unsupported-algorithm"
    MALFORMED_INPUT = "malformed-input"


class DNSSECError(Exception):
    """Base class for every validation failure.

    Inputs:
      - message: Human readable description.
      - attempts: Optional sequence of earlier failures collected by a retry
        loop (one entry per RRSIG tried). The error itself is the last one.

    Outputs:
      - Exception instance exposing ``kind`` and ``attempts``.
    """

    kind: ErrorKind = ErrorKind.BOGUS

    def __init__(
        self, message: str, *, attempts: Optional[Sequence["DNSSECError"]] = None
    ) -> None:
        super().__init__(message)
        self.attempts: List[DNSSECError] = list(attempts or [])

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else self.kind.value


class ConfigurationError(DNSSECError):
    kind = ErrorKind.CONFIGURATION


class UnsignedError(DNSSECError):
    kind = ErrorKind.UNSIGNED


class BogusSignatureError(DNSSECError):
    kind = ErrorKind.BOGUS


class TimeWindowError(DNSSECError):
    kind = ErrorKind.TIME_WINDOW


class ChainOfTrustError(DNSSECError):
    kind = ErrorKind.CHAIN


class UnsupportedAlgorithmError(DNSSECError):
    kind = ErrorKind.UNSUPPORTED_ALGORITHM


class MalformedInputError(DNSSECError):
    kind = ErrorKind.MALFORMED_INPUT


class DeprecatedAlgorithmWarning(UserWarning):
    """Emitted when a deprecated but still accepted algorithm is used (RSAMD5)."""


def exhausted(
    attempts: Sequence[DNSSECError], fallback: DNSSECError
) -> DNSSECError:
    """Brief: Pick the error to raise once every alternative has failed.

    Inputs:
      - attempts: Failures in the order they happened.
      - fallback: Error used when no attempt was recorded.

    Outputs:
      - The last recorded failure (or fallback) with ``attempts`` populated.
    """

    err = attempts[-1] if attempts else fallback
    err.attempts = list(attempts)
    return err
