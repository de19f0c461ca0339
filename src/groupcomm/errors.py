"""Exceptions raised by the group communication layer.

All of these signal programming errors (broken preconditions or a peer set
that violates the exchange protocol). They are raised immediately and never
caught inside the package.
"""


class GroupCommError(RuntimeError):
    """Base class for all group communication errors."""


class PartitionError(GroupCommError, ValueError):
    """Malformed partition description or inconsistent group tables."""


class CommLockError(GroupCommError):
    """Split-phase begin/end calls were not properly paired."""


class NotFinalizedError(GroupCommError):
    """Operation requires tables that have not been built yet."""


class LayoutError(GroupCommError, ValueError):
    """Unsupported local data layout for the requested operation."""


class PendingSendError(GroupCommError):
    """A message was copied, re-sent or destroyed while its send is pending."""


class UnexpectedMessageError(GroupCommError):
    """A message arrived from a rank that is not among the expected senders."""


class MessageSizeError(GroupCommError):
    """Received byte count differs from the probed message size."""
