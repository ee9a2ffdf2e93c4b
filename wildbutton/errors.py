"""Error types raised by the scheduling, click and stats code."""


class WildButtonError(Exception):
    """Base class for everything this package raises on purpose."""


class InvalidScheduleError(WildButtonError):
    """The team's configuration can never produce a fire time."""


class DeliveryError(WildButtonError):
    """Posting or updating a Slack message failed."""


class StaleClickError(WildButtonError):
    """A click referenced a message that is not the live pending one."""


class ConflictError(WildButtonError):
    """A conditional store write lost a race."""


class InstallError(WildButtonError):
    """The OAuth code could not be exchanged for a bot token."""
