"""
Error handling for niri-sticky.

Structured error codes shared by the transition engine, the niri gateway
and the IPC request path.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """
    Error codes for niri-sticky.

    Protocol codes (JSON-RPC numbering):
    - -32700: Parse error
    - -32603: Internal error

    Custom codes (1000-1999):
    - 1000-1099: Window membership errors
    - 1100-1199: Configuration errors
    - 1400-1499: niri IPC errors
    """

    # Protocol errors
    PARSE_ERROR = -32700
    INTERNAL_ERROR = -32603

    # Membership errors (1000-1099)
    RESOURCE_NOT_FOUND = 1000
    NO_MATCH = 1001
    ALREADY_IN_TARGET_STATE = 1002
    INELIGIBLE_STATE = 1003
    INVALID_STATE = 1004

    # Configuration errors (1100-1199)
    CONFIG_LOAD_FAILED = 1100

    # niri IPC errors (1400-1499)
    HOST_UNAVAILABLE = 1400
    HOST_REJECTED = 1401
    NO_FOCUS = 1402
    NO_ACTIVE_CONTEXT = 1403


class StickyError(Exception):
    """Base exception for niri-sticky errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum
            message: Human-readable error message
            suggestion: Suggested recovery action
            context: Additional context for debugging
        """
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging and diagnostics.

        Returns:
            Error dictionary with code, message, suggestion, and context
        """
        result = {
            "code": self.code.value,
            "message": self.message
        }

        if self.suggestion:
            result["suggestion"] = self.suggestion

        if self.context:
            result["context"] = self.context

        return result


class ResourceNotFound(StickyError):
    """Window ID is not present in niri's live window list."""

    def __init__(self, window_id: int, what: str = "Window"):
        super().__init__(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=f"{what} {window_id} not found in niri",
            suggestion="List windows with: niri msg windows",
            context={"window_id": window_id}
        )


class NoMatch(StickyError):
    """Label or title resolution found no window."""

    def __init__(self, field: str, value: str):
        if field == "title":
            message = f"No window found with title containing '{value}'"
        else:
            message = f"No window found with {field} {value}"
        super().__init__(
            code=ErrorCode.NO_MATCH,
            message=message,
            context={field: value}
        )


class AlreadyInTargetState(StickyError):
    """Window already has the membership the operation would give it."""

    def __init__(self, window_id: int, state: str):
        super().__init__(
            code=ErrorCode.ALREADY_IN_TARGET_STATE,
            message=f"Window {window_id} is already {state}",
            context={"window_id": window_id, "state": state}
        )


class IneligibleState(StickyError):
    """Window's current membership does not allow the operation."""

    def __init__(self, window_id: int, reason: str):
        super().__init__(
            code=ErrorCode.INELIGIBLE_STATE,
            message=f"Window {window_id} {reason}",
            context={"window_id": window_id}
        )


class InvalidState(StickyError):
    """Window found in both the sticky and the staged set."""

    def __init__(self, window_id: int):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=f"Window {window_id} is both sticky and staged",
            suggestion="Restart the daemon to reset window state",
            context={"window_id": window_id}
        )


class HostUnavailable(StickyError):
    """niri could not be reached or returned unparseable data."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            code=ErrorCode.HOST_UNAVAILABLE,
            message=f"niri IPC {operation} failed: {reason}",
            suggestion="Ensure niri is running and NIRI_SOCKET is set",
            context={"operation": operation, "reason": reason}
        )


class HostRejected(StickyError):
    """niri answered a command with an error."""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            code=ErrorCode.HOST_REJECTED,
            message=f"niri rejected {operation}: {reason}",
            context={"operation": operation, "reason": reason}
        )


class NoFocus(StickyError):
    """No window currently has focus."""

    def __init__(self):
        super().__init__(
            code=ErrorCode.NO_FOCUS,
            message="No focused window"
        )


class NoActiveContext(StickyError):
    """No workspace is currently active."""

    def __init__(self):
        super().__init__(
            code=ErrorCode.NO_ACTIVE_CONTEXT,
            message="Active workspace not found"
        )


class ProtocolError(StickyError):
    """Request line could not be parsed."""

    def __init__(self, message: str, line: Optional[str] = None):
        super().__init__(
            code=ErrorCode.PARSE_ERROR,
            message=message,
            context={"line": line} if line is not None else None
        )


class ConfigLoadError(StickyError):
    """Configuration loading error."""

    def __init__(self, file_path: str, reason: str):
        """
        Initialize configuration load error.

        Args:
            file_path: Path to configuration file
            reason: Reason for load failure
        """
        super().__init__(
            code=ErrorCode.CONFIG_LOAD_FAILED,
            message=f"Failed to load configuration from {file_path}: {reason}",
            suggestion="Check file syntax and values",
            context={"file_path": file_path, "reason": reason}
        )
