# errors.py
"""Exception types raised by the signal and account core"""


class TradeVisionError(Exception):
    """Base class for all trade vision errors"""


class SignalError(TradeVisionError):
    """A trade signal could not be produced from an analysis result"""

    def __init__(self, message: str, reasoning: str = ""):
        super().__init__(message)
        self.reasoning = reasoning

    @property
    def user_message(self) -> str:
        """Message surfaced to the user when no signal is produced"""
        if self.reasoning:
            return f"{self} - {self.reasoning}"
        return str(self)


class InvalidSetup(SignalError):
    """Entry/stop degenerate, non-finite, or on the wrong side of each other"""


class UnsupportedDirection(SignalError):
    """Direction is neither BUY nor SELL"""


class StoreParseError(TradeVisionError):
    """A persisted blob is not valid JSON for its key"""

    def __init__(self, key: str, cause: Exception):
        super().__init__(f"Corrupted store value for key '{key}': {cause}")
        self.key = key


class AccountError(TradeVisionError):
    """Signup, login or plan override rejected"""
