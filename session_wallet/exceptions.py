"""
Typed failures raised by the UserOperation pipeline
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every pipeline failure"""


class ConnectivityError(PipelineError):
    """RPC node or bundler unreachable, timed out, or answered with an HTTP error"""


class InvalidWalletError(PipelineError):
    """Wallet address has no contract code or a read call reverted"""


class SigningError(PipelineError):
    """Private key or digest unusable for signing"""


class InsufficientBalanceError(PipelineError):
    """Wallet balance cannot cover the requested transfer"""


class BundlerResponseError(PipelineError):
    """Bundler answered with a payload that is not a valid JSON-RPC result"""


class BundlerRejected(PipelineError):
    """Bundler refused the UserOperation. The message is the bundler's own, verbatim."""

    def __init__(self, code: Optional[int], message: str):
        super().__init__(f"Bundler rejected UserOperation ({code}): {message}")
        self.code = code
        self.message = message


class HashMismatch(PipelineError):
    """Locally computed userOpHash differs from the reference value"""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"userOpHash mismatch: expected {expected}, computed {actual}")
        self.expected = expected
        self.actual = actual
