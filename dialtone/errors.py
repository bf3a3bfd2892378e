"""
Error types raised by dialtone.

Two families:
  - ClientError: raised while talking to the responses endpoint
  - ConfigurationError: raised while loading a configuration

Each error carries a human-readable `description`, which is also what
str() returns. Errors compare equal when their type and fields match.
Cancellation is not modelled here: asyncio.CancelledError propagates as-is.
"""

from __future__ import annotations


class DialtoneError(Exception):
    """Base for every error dialtone raises on purpose."""

    @property
    def description(self) -> str:
        return self.__class__.__name__

    def __str__(self) -> str:
        return self.description

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


# ---------------------------------------------------------------------------
# Client errors
# ---------------------------------------------------------------------------

class ClientError(DialtoneError):
    pass


class MissingAPIKey(ClientError):
    @property
    def description(self) -> str:
        return "Missing OpenAI API key."


class InvalidResponse(ClientError):
    """The endpoint answered with something that isn't a usable response."""

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    @property
    def description(self) -> str:
        if self.detail:
            return f"Invalid response from OpenAI API: {self.detail}"
        return "Invalid response from OpenAI API."


class EmptyResponse(ClientError):
    @property
    def description(self) -> str:
        return "OpenAI API returned an empty text response."


class BadResponse(ClientError):
    """Non-2xx status, or an error event inside a stream."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(status_code, message)
        self.status_code = status_code
        self.message = message

    @property
    def description(self) -> str:
        if not self.message:
            return f"OpenAI API request failed with status code {self.status_code}."
        return f"OpenAI API request failed with status code {self.status_code}: {self.message}"


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(DialtoneError):
    pass


class ConfigNotFound(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    @property
    def description(self) -> str:
        return f"Could not find configuration named {self.name}."


class InvalidConfigFile(ConfigurationError):
    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    @property
    def description(self) -> str:
        return f"Could not decode configuration file at {self.path}."


class MissingRequiredKey(ConfigurationError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    @property
    def description(self) -> str:
        return f"Missing required configuration key: {self.key}."


class InvalidValue(ConfigurationError):
    def __init__(self, key: str, expected: str):
        super().__init__(key, expected)
        self.key = key
        self.expected = expected

    @property
    def description(self) -> str:
        return f"Invalid value for configuration key {self.key}. Expected {self.expected}."
