"""Exception hierarchy for moderation failures.

Collaborators raise these at their boundary so the orchestrator never has to
know about discord.py or aiosqlite exception types.
"""


class ModledgerError(Exception):
    """Base class for all moderation errors."""


class AuthorityDenied(ModledgerError):
    """The acting member may not act on the target."""


class MutationFailed(ModledgerError):
    """A platform mutation (ban, kick, role change) was rejected or errored."""


class DeliveryFailed(ModledgerError):
    """A notification could not be delivered through one transport."""


class ConfirmationCancelled(ModledgerError):
    """The requester cancelled an interactive confirmation."""


class ConfirmationTimeout(ModledgerError):
    """No reply arrived before the confirmation window closed."""
