"""Wager lifecycle exceptions.

Every error carries a stable ``code`` and a ``retryable`` flag. Services
raise these internally; the lifecycle boundary converts them into an
``OperationResult`` failure and the HTTP layer maps ``code`` to a status.
"""


class WagerError(Exception):
    """Base exception for wager lifecycle errors."""

    code = "wager_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WagerError):
    """Request arguments are malformed."""

    code = "validation_error"


class AuthorizationError(WagerError):
    """Caller is not entitled to perform the operation."""

    code = "authorization_error"


class NotFoundError(WagerError):
    """Referenced wager or participant does not exist."""

    code = "not_found"


class InvalidTransitionError(WagerError):
    """Operation is not valid from the entity's current status."""

    code = "invalid_transition"


class OpponentNotFound(WagerError):
    """No counterpart participant can be resolved for settlement."""

    code = "opponent_not_found"


class TransientStoreError(WagerError):
    """Transaction conflict or connectivity failure in the entity store."""

    code = "transient_store_error"
    retryable = True


class StoreError(WagerError):
    """The entity store rejected a write that retrying cannot fix."""

    code = "store_error"
