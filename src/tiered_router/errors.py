"""Exception hierarchy for the tiered router.

Backend adapters raise these; the classifier and availability guard catch them
at their boundaries and degrade toward the API tier, so none of them escape a
routing call.
"""


class RouterError(Exception):
    """Base class for router errors."""


class SignatureError(RouterError, ValueError):
    """An intent signature violates its invariants."""


class BackendError(RouterError):
    """The inference backend failed to produce a response."""


class BackendUnavailableError(BackendError):
    """The backend is unreachable or the expected model is not installed."""


class BackendTimeoutError(BackendError):
    """A backend call exceeded its time budget."""
