"""Error taxonomy for the cosigning pipeline.

Every stage raises one of these. The HTTP boundary only looks at
``kind`` and ``client_error``:

- client errors (the caller sent something unprocessable) -> 400
- server errors (the service or the chain node failed)   -> 5xx
"""

from typing import Optional


class CosignError(Exception):
    """Base exception for all cosigning failures."""

    kind = "InternalError"
    client_error = False
    # True when the failure happened talking to the chain node
    downstream = False

    def __init__(self, message: str = "", *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        # Set by the engine when the error crosses a stage boundary
        self.stage: Optional[str] = None


class MalformedRequest(CosignError):
    """Bad encoding, bad JSON body or a request that cannot be resolved."""

    kind = "MalformedRequest"
    client_error = True


class UnknownChain(CosignError):
    """Chain alias is not in the well-known table."""

    kind = "UnknownChain"
    client_error = True


class SerializationError(CosignError):
    """Value does not fit the ABI type it is being packed as."""

    kind = "SerializationError"
    client_error = True


class InterfaceUnavailable(CosignError):
    """ABI for a referenced contract could not be retrieved."""

    kind = "InterfaceUnavailable"
    downstream = True


class AccountHasNoInterface(InterfaceUnavailable):
    """The node answered, but the account has no contract deployed."""


class SigningError(CosignError):
    """Exception raised when signing fails."""

    kind = "SigningError"


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""


class BroadcastError(CosignError):
    """Push to the chain node failed or was rejected."""

    kind = "BroadcastError"
    downstream = True

    def __init__(
        self,
        message: str = "",
        *,
        cause: Optional[BaseException] = None,
        status_code: Optional[int] = None,
        error_name: Optional[str] = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.error_name = error_name


class InternalError(CosignError):
    """Anything the pipeline did not anticipate."""
