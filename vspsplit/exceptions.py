"""Exception classes for the virtual subpopulation engine.

Two families of errors exist:

  - Configuration errors, raised while a splitter (or a subpopulation list)
    is being constructed from user input. A splitter is never returned in a
    partially constructed state.
  - Protocol errors, raised when a splitter is used incorrectly: activating
    while another VSP is active, deactivating a subpopulation that is not
    the active one, or addressing a VSP that does not exist.

An empty virtual subpopulation is not an error.
"""

from typing import Optional


class VspError(Exception):
    """Base exception class for all virtual subpopulation errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.suggestion:
            return f"{self.message}. Suggestion: {self.suggestion}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class SplitterConfigError(VspError, ValueError):
    """Raised when a splitter is constructed from invalid parameters."""


# =============================================================================
# Protocol Errors
# =============================================================================

class ActivationError(VspError, RuntimeError):
    """Raised when the activate/deactivate protocol is violated."""


class InvalidVspError(ActivationError, IndexError):
    """Raised when a (virtual) subpopulation id is out of range."""

    def __init__(self, what: str, value, upper: int):
        self.value = value
        self.upper = upper
        message = f"{what} {value} out of range"
        suggestion = (
            f"valid range is 0 to {upper - 1}" if upper > 0
            else "no valid ids are defined"
        )
        super().__init__(message, suggestion)
