"""Error taxonomy shared by the ledger services and the HTTP layer."""


class LedgerError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class ValidationError(LedgerError):
    """Missing or malformed input, or a split that does not reconcile."""
    status_code = 400


class AuthorizationError(LedgerError):
    """Requester is not a member, or lacks admin/creator rights."""
    status_code = 403


class NotFoundError(LedgerError):
    """Unknown group, expense, membership or settlement reference."""
    status_code = 404


class MemberNotFoundError(NotFoundError):
    """A username in the request body could not be resolved."""
    status_code = 400

    def __init__(self, usernames):
        self.usernames = list(usernames)
        names = ", ".join(self.usernames)
        super().__init__(f"User(s) not found: {names}")


class ConflictError(LedgerError):
    """The request conflicts with the current state (e.g. duplicate membership)."""
    status_code = 400


class InfrastructureError(LedgerError):
    """Database or directory failure. The public message never carries details."""
    status_code = 500

    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(message)
