"""Standard exception hierarchy for the Loxone MCP server.

All lox-mcp exceptions inherit from LoxMcpError, making it easy
to catch all server-specific errors.

Exception Hierarchy:
    LoxMcpError (base)
    ├── ConfigurationError - Invalid process configuration
    ├── AddressError - Miniserver address could not be resolved
    │   ├── EmptyAddressError - Blank address
    │   └── InvalidAddressFormatError - Address matches no known shape
    ├── DispatchError - Tool/resource call could not be executed
    │   ├── MissingParameterError - Required argument absent
    │   ├── InvalidParameterError - Argument outside declared enum
    │   ├── NotFoundError - Named room/category does not exist
    │   ├── EmptyScopeError - Scope resolved to zero visible devices
    │   └── UnknownHandlerKindError - Config references unknown handler
    └── BackendUnavailableError - Miniserver I/O or protocol failure
"""


class LoxMcpError(Exception):
    """Base exception for all lox-mcp errors.

    Catch this to handle any server-specific exception:
        try:
            structure = await adapter.get_structure()
        except LoxMcpError as e:
            logger.error(f"Loxone MCP error: {e}")
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(LoxMcpError):
    """Invalid process configuration.

    Raised when required environment variables (LOXONE_HOST, LOXONE_USER,
    LOXONE_PASS) are missing or hold unusable values.
    """

    pass


# =============================================================================
# Address Errors
# =============================================================================


class AddressError(LoxMcpError):
    """Base exception for Miniserver address resolution errors."""

    pass


class EmptyAddressError(AddressError):
    """Address is empty or blank."""

    def __init__(self) -> None:
        super().__init__("Address cannot be empty or blank")


class InvalidAddressFormatError(AddressError):
    """Address is neither a local IP, a Loxone MAC, nor a URL."""

    def __init__(self, address: str):
        super().__init__(f"Invalid address format: {address}")
        self.address = address


# =============================================================================
# Dispatch Errors
# =============================================================================


class DispatchError(LoxMcpError):
    """Base exception for errors recovered into failure results by dispatchers."""

    pass


class MissingParameterError(DispatchError):
    """A required tool argument was not supplied."""

    def __init__(self, parameter: str):
        super().__init__(f"Missing required parameter: {parameter}")
        self.parameter = parameter


class InvalidParameterError(DispatchError):
    """A tool argument is not one of the declared allowed values."""

    def __init__(self, parameter: str, value: str, allowed: list[str]):
        super().__init__(
            f"Invalid value for parameter {parameter}: {value} "
            f"(allowed: {', '.join(allowed)})"
        )
        self.parameter = parameter
        self.value = value
        self.allowed = allowed


class NotFoundError(DispatchError):
    """A named room or category does not exist in the structure.

    Attributes:
        kind: What was looked up ("Room", "Category").
        name: The name that matched nothing.
    """

    def __init__(self, kind: str, name: str):
        super().__init__(f"{kind} not found: {name}")
        self.kind = kind
        self.name = name


class EmptyScopeError(DispatchError):
    """A scope exists but holds no visible devices to act on."""

    def __init__(self, scope: str):
        super().__init__(f"No devices found {scope}")
        self.scope = scope


class UnknownHandlerKindError(DispatchError):
    """Configuration references a handler type that is not implemented."""

    def __init__(self, kind: str):
        super().__init__(f"Unknown handler type: {kind}")
        self.kind = kind


# =============================================================================
# Backend Errors
# =============================================================================


class BackendUnavailableError(LoxMcpError):
    """Talking to the Miniserver failed.

    Raised when:
    - The HTTP request times out or the connection drops
    - The Miniserver answers with a non-200 status or LL code
    - The response body cannot be parsed
    - The session was closed while the call was in flight
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.command = command
