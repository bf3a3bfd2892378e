"""
dialtone: conversational client for the hosted "responses" LLM API.
Bounded multi-turn history, streaming, and retry with backoff.
"""
from dialtone.client import ResponsesClient
from dialtone.config import ClientConfig, RetryPolicy, config_from_dict, find_config, load_config
from dialtone.errors import (
    BadResponse,
    ClientError,
    ConfigNotFound,
    ConfigurationError,
    DialtoneError,
    EmptyResponse,
    InvalidConfigFile,
    InvalidResponse,
    InvalidValue,
    MissingAPIKey,
    MissingRequiredKey,
)
from dialtone.models import Message, Role

__version__ = "0.1.0"

__all__ = [
    "ResponsesClient",
    "ClientConfig",
    "RetryPolicy",
    "config_from_dict",
    "find_config",
    "load_config",
    "Message",
    "Role",
    "DialtoneError",
    "ClientError",
    "MissingAPIKey",
    "InvalidResponse",
    "EmptyResponse",
    "BadResponse",
    "ConfigurationError",
    "ConfigNotFound",
    "InvalidConfigFile",
    "MissingRequiredKey",
    "InvalidValue",
]
