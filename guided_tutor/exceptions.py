"""
Custom Exception Hierarchy for the Guided Tutor engine

Exception Hierarchy:
    TutorEngineError (base)
    ├── SessionError
    │   ├── SessionNotFoundError
    │   └── SessionBusyError
    ├── StateError
    │   └── InvalidTransitionError
    ├── PromptError
    │   ├── TemplateMissingError
    │   ├── ContextTooLargeError
    │   └── PromptTemplateError
    ├── GenerationError
    │   ├── GenerationUnavailableError
    │   └── GenerationTimeoutError
    ├── StorageError
    └── ConfigurationError

Only SessionNotFoundError, SessionBusyError and InvalidTransitionError leave
the orchestrator. Everything else is classified there and turned into a
fallback response.

Usage:
    from guided_tutor.exceptions import SessionNotFoundError

    if session is None:
        raise SessionNotFoundError(session_id)
"""

from typing import Optional


# ===========================================
# Base Exception
# ===========================================


class TutorEngineError(Exception):
    """
    Base exception for all engine errors.

    All custom exceptions in the application inherit from this class,
    making it easy to catch all application-specific errors.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ===========================================
# Session Errors
# ===========================================


class SessionError(TutorEngineError):
    """Base exception for session-related errors."""

    pass


class SessionNotFoundError(SessionError):
    """Raised when session is not found in storage."""

    def __init__(self, session_id: str):
        """
        Initialize session not found error.

        Args:
            session_id: ID of the missing session
        """
        message = f"Session not found: {session_id}"
        super().__init__(message)
        self.session_id = session_id


class SessionBusyError(SessionError):
    """Raised when a turn is already in flight for the session."""

    def __init__(self, session_id: str):
        message = f"Session busy: {session_id} already has a turn in flight"
        super().__init__(message)
        self.session_id = session_id


# ===========================================
# State Errors
# ===========================================


class StateError(TutorEngineError):
    """Base exception for state machine errors."""

    pass


class InvalidTransitionError(StateError):
    """Raised when an event is illegal in the current session state."""

    def __init__(self, state: str, event: str, reason: str):
        """
        Initialize invalid transition error.

        Args:
            state: Current lifecycle state
            event: Event that was rejected
            reason: Reason the transition is illegal
        """
        message = f"Invalid transition: event '{event}' in state '{state}': {reason}"
        super().__init__(message)
        self.state = state
        self.event = event
        self.reason = reason


# ===========================================
# Prompt Errors
# ===========================================


class PromptError(TutorEngineError):
    """Base exception for prompt-related errors."""

    pass


class TemplateMissingError(PromptError):
    """Raised when a required instructional template cannot be resolved."""

    def __init__(self, template_name: str, location: Optional[str] = None):
        message = f"Required template missing: {template_name}"
        if location:
            message += f" (looked in: {location})"
        super().__init__(message)
        self.template_name = template_name
        self.location = location


class ContextTooLargeError(PromptError):
    """Raised when a prompt exceeds the token budget even after truncation."""

    def __init__(self, estimated_tokens: int, budget: int):
        message = (
            f"Prompt needs ~{estimated_tokens} tokens after truncating history, "
            f"budget is {budget}"
        )
        super().__init__(message)
        self.estimated_tokens = estimated_tokens
        self.budget = budget


class PromptTemplateError(PromptError):
    """Raised when prompt template rendering fails."""

    def __init__(self, template_name: str, missing_vars: list[str]):
        """
        Initialize prompt template error.

        Args:
            template_name: Name of the template
            missing_vars: List of missing template variables
        """
        message = f"Prompt template '{template_name}' missing variables: {', '.join(missing_vars)}"
        super().__init__(message)
        self.template_name = template_name
        self.missing_vars = missing_vars


# ===========================================
# Generation Errors
# ===========================================


class GenerationError(TutorEngineError):
    """Base exception for generation backend errors."""

    pass


class GenerationUnavailableError(GenerationError):
    """Raised when the generation backend cannot produce a response."""

    def __init__(
        self,
        message: str,
        model_name: Optional[str] = None,
        attempts: Optional[int] = None,
    ):
        """
        Initialize generation unavailable error.

        Args:
            message: Error message
            model_name: Name of the model that failed
            attempts: Number of transport attempts made
        """
        super().__init__(message)
        self.model_name = model_name
        self.attempts = attempts


class GenerationTimeoutError(GenerationError):
    """Raised when generation exceeds its time ceiling."""

    def __init__(self, timeout_seconds: float, scope: str = "attempt"):
        """
        Initialize generation timeout error.

        Args:
            timeout_seconds: Ceiling that was exceeded
            scope: "attempt" for a single generation, "turn" for the whole turn
        """
        message = f"Generation timed out after {timeout_seconds}s ({scope})"
        super().__init__(message)
        self.timeout_seconds = timeout_seconds
        self.scope = scope


# ===========================================
# Storage Errors
# ===========================================


class StorageError(TutorEngineError):
    """Raised when the persistence backend fails."""

    def __init__(self, operation: str, reason: str):
        message = f"Storage operation '{operation}' failed: {reason}"
        super().__init__(message)
        self.operation = operation
        self.reason = reason


# ===========================================
# Configuration Errors
# ===========================================


class ConfigurationError(TutorEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, config_key: str, reason: str):
        """
        Initialize configuration error.

        Args:
            config_key: Configuration key that is invalid
            reason: Reason for the error
        """
        message = f"Configuration error for '{config_key}': {reason}"
        super().__init__(message)
        self.config_key = config_key
        self.reason = reason
