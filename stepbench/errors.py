# stepbench/errors.py
"""
Error taxonomy for stepbench.

Each error carries an HTTP status and a short machine code so the API layer
can render `{message, error}` bodies without inspecting exception types.
"""

from __future__ import annotations

from typing import Optional


class StepBenchError(Exception):
    status_code = 500
    code = "internal_error"
    public_message = "Error processing request"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class RequestValidationError(StepBenchError):
    status_code = 400
    code = "invalid_request"
    public_message = "Invalid request body."


class InvalidCommandError(RequestValidationError):
    code = "invalid_command"
    public_message = 'Invalid command. Must be "start" or "list".'


class InvalidVariantError(RequestValidationError):
    code = "invalid_state_machine"
    public_message = "Invalid stateMachine type. Must be EXPRESS or STANDARD."


class ConfigurationError(StepBenchError):
    code = "configuration_error"
    public_message = "State machine ARNs not found in environment variables."


class InvalidSettingsError(ConfigurationError):
    public_message = "Service configuration is invalid."


class ExternalServiceError(StepBenchError):
    code = "external_service_error"


class QueryTimeoutError(StepBenchError):
    """Raised when a log aggregation job does not reach a terminal state within its poll bound."""
    code = "query_timeout"
    public_message = "Duration query did not complete in time."

    def __init__(self, query_id: str, polls: int, elapsed: float, last_status: Optional[str] = None):
        super().__init__(
            f"query {query_id} still {last_status or 'pending'} after {polls} polls ({elapsed:.1f}s)"
        )
        self.query_id = query_id
        self.polls = polls
        self.elapsed = elapsed
        self.last_status = last_status
