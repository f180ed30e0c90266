"""Error taxonomy shared by the flows, the store and the transport adapter."""


class ExpenseTrackerError(Exception):
    """Base class for every error raised on purpose by the bot."""


class ConfigurationError(ExpenseTrackerError):
    """Startup configuration is inconsistent (e.g. no enabled flows)."""


class TransportError(ExpenseTrackerError):
    """A Telegram API call failed (send, edit, delete, answer or download)."""


class ValidationError(ExpenseTrackerError):
    """User input was rejected; the flow stays on its current step."""


class NotFoundError(ExpenseTrackerError):
    """A callback referenced a row that no longer exists."""
