"""Error taxonomy for the fact bridge."""


class BridgeError(Exception):
    """Base class for all fact bridge errors."""


class EngineNotFoundError(BridgeError):
    """The souffle binary, Datalog source or compiled artifact is missing."""


class SchemaMismatchError(BridgeError):
    """A value or declaration disagrees with its Fact Kind."""


class UnknownFactError(BridgeError):
    """
    A Fact Kind was used with a program that does not declare it.

    Attributes:
        kind_name: Name of the offending Fact Kind
        program_name: Name of the program it was used with
    """

    def __init__(self, kind_name: str, program_name: str):
        self.kind_name = kind_name
        self.program_name = program_name
        super().__init__(
            f"Fact '{kind_name}' is not declared by program '{program_name}'"
        )


class FactDirectionError(BridgeError):
    """A Fact Kind was added or queried against its declared direction."""


class InvalidStateError(BridgeError):
    """
    An operation was invoked outside its valid session state.

    Attributes:
        state: The session state at the time of the call
    """

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation}: session is {state}")


class EngineError(BridgeError):
    """The Datalog engine failed while running or reading relations."""

    def __init__(self, message: str, stderr: str | None = None):
        self.stderr = stderr
        super().__init__(message)
