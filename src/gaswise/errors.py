"""Error taxonomy for gas optimization and swap orchestration.

Every rejected call raises one of these and leaves all stored state untouched.
"""

from typing import Optional


class GasWiseError(Exception):
    """Base class for all gaswise errors."""

    code = "error"

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(message)


class AuthorizationError(GasWiseError):
    """Caller lacks the role required for a privileged operation."""

    code = "unauthorized"


class ValidationError(GasWiseError):
    """Input rejected: unknown chain, zero amount, malformed batch, bad bounds."""

    code = "invalid_input"


class StalenessError(GasWiseError):
    """Price or oracle data is missing or older than its validity window."""

    code = "stale_data"


class StateConflictError(GasWiseError):
    """Operation is not valid for the swap's current status."""

    code = "state_conflict"

    def __init__(self, message: str, entity_id: Optional[str] = None, status: Optional[str] = None):
        self.status = status
        super().__init__(message, entity_id)


class TimeoutGateError(GasWiseError):
    """Recovery requested before the minimum elapsed time."""

    code = "recovery_too_early"

    def __init__(self, message: str, entity_id: Optional[str] = None, retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(message, entity_id)


class PausedSystemError(GasWiseError):
    """Swap initiation is halted by an administrator."""

    code = "system_paused"


class BridgeError(GasWiseError):
    """The bridge transport refused or failed to dispatch a transfer."""

    code = "bridge_unavailable"
