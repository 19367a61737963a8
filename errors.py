"""Exception types raised by the presence bot"""
from typing import Optional


class BotError(Exception):
    """Base class for every error the bot raises on purpose"""

    pass


class ConfigurationError(BotError):
    """Missing or invalid startup parameter"""

    def __init__(self, issues):
        self.issues = list(issues)
        super().__init__(f"Invalid configuration: {'; '.join(self.issues)}")


class RconConnectionError(BotError):
    """The RCON transport could not be established"""

    pass


class AuthenticationError(BotError):
    """The RCON server rejected the password"""

    pass


class QueryError(BotError):
    """A single command on an open session failed"""

    pass


class CloseError(BotError):
    """Closing the RCON session reported an error"""

    pass


class RosterQueryError(BotError):
    """Roster query still failing after the whole retry budget"""

    def __init__(self, address: str, attempts: int, cause: Optional[BaseException] = None):
        self.address = address
        self.attempts = attempts
        self.cause = cause
        message = f"Roster query on {address} failed after {attempts} attempts"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class DeliveryError(BotError):
    """Webhook delivery still failing after the whole retry budget"""

    def __init__(self, message: str, attempts: int):
        self.message = message
        self.attempts = attempts
        super().__init__(f"Could not deliver {message!r} after {attempts} attempts")
