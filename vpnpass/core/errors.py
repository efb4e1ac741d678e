"""
Error taxonomy shared by the store, the conversation engine, the API and
background jobs.
"""


class VpnPassError(Exception):
    """Base class; `message` is safe to show to an actor."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(VpnPassError):
    """Malformed input. Recovered locally: the same step is re-prompted."""

    code = "validation_error"


class DuplicateCredential(VpnPassError):
    code = "duplicate_credential"

    def __init__(self, credential: str) -> None:
        super().__init__(f"Credential {credential} already exists")
        self.credential = credential


class NotFound(VpnPassError):
    code = "not_found"

    def __init__(self, credential: str) -> None:
        super().__init__(f"Credential {credential} not found")
        self.credential = credential


class AccessDenied(VpnPassError):
    code = "access_denied"


class BelowMinimum(VpnPassError):
    code = "below_minimum"

    def __init__(self, price: int, minimum: int) -> None:
        super().__init__(f"Minimum transaction is {minimum}, got {price}")
        self.price = price
        self.minimum = minimum


class ExternalServiceError(VpnPassError):
    """Provider, reload or other external collaborator failure."""

    code = "external_service_error"


class PersistenceError(VpnPassError):
    """Write (or lock) failure; the persisted collection is left untouched."""

    code = "persistence_error"
