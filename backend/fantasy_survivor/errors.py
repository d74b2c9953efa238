class FantasyError(Exception):
    """Base for failures the core reports back to the caller."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(FantasyError):
    """Malformed input."""

    status_code = 400


class NotFoundError(FantasyError):
    status_code = 404


class ForbiddenError(FantasyError):
    """Actor lacks the role required for this transition."""

    status_code = 403


class InvalidStateError(FantasyError):
    """Trade is not in the state the requested transition needs."""

    status_code = 409


class LockedError(FantasyError):
    """The governing weekly deadline has passed."""

    status_code = 423


class ConflictError(FantasyError):
    """
    A re-validated invariant failed while executing, e.g. a contestant changed
    hands between proposal and acceptance. The only retryable error.
    """

    status_code = 409
