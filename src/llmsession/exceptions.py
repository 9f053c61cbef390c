# src/llmsession/exceptions.py
"""
Custom exceptions for the llmsession library.

This module defines a hierarchy of custom exception classes so that
applications can tell configuration, provider and cache problems apart
and handle each of them in a targeted way.
"""

class LLMSessionError(Exception):
    """Base class for all llmsession specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in llmsession."):
        super().__init__(message)

class ConfigError(LLMSessionError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ProviderError(LLMSessionError):
    """Raised for errors originating from the model provider (API errors, connection issues)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error."):
        self.provider_name = provider_name
        super().__init__(f"Error with provider '{provider_name}': {message}")

class StructuredOutputError(ProviderError):
    """Raised when a structured response does not conform to the requested schema."""
    def __init__(self, provider_name: str = "Unknown", schema_name: str = "object",
                 message: str = "Structured output validation failed."):
        self.schema_name = schema_name
        super().__init__(provider_name, f"{message} Schema: '{schema_name}'")

class StorageError(LLMSessionError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class CacheError(StorageError):
    """Raised when a cache provider operation fails."""
    def __init__(self, message: str = "Cache error."):
        super().__init__(message)

class CacheConnectionError(CacheError):
    """Raised when the cache provider cannot reach its backing service."""
    def __init__(self, message: str = "Cache connection error."):
        super().__init__(message)

class SessionStorageError(StorageError):
    """Raised when a session context cannot be persisted."""
    def __init__(self, session_key: str = "", message: str = "Session storage error."):
        self.session_key = session_key
        if session_key:
            message = f"{message} Session key: '{session_key}'"
        super().__init__(message)
