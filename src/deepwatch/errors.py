"""Exception types raised by deepwatch.

Everything is raised synchronously at the call that triggered it. Nothing in
the library swallows or retries these.
"""


class DeepwatchError(Exception):
    """Base class for all deepwatch errors."""


class InvariantViolationError(DeepwatchError):
    """A wrapper or tracker was used outside of its contract."""


class UnsupportedOperationError(DeepwatchError, TypeError):
    """The operation is not supported on a tracked object."""


class ReadOnlyPropertyError(UnsupportedOperationError):
    """An object-valued read-only field cannot be handed out wrapped."""


class PreserveError(DeepwatchError, ValueError):
    """Object identities could not be matched consistently during reconcile()."""


class ObsoleteObjectError(DeepwatchError, AttributeError):
    """An object discarded by reconcile() was used afterwards."""
