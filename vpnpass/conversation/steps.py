"""
Conversation steps and flows.
"""
from enum import Enum


class Flow(str, Enum):
    CREATE = "create"
    RENEW = "renew"
    DELETE = "delete"
    RESTORE = "restore"


class Step(str, Enum):
    IDLE = "idle"
    CREATE_CREDENTIAL = "create:awaiting-credential"
    CREATE_DURATION = "create:awaiting-duration"
    CREATE_PAYMENT = "create:awaiting-payment"
    RENEW_SELECTION = "renew:awaiting-selection"
    RENEW_DURATION = "renew:awaiting-duration"
    DELETE_SELECTION = "delete:awaiting-selection"
    DELETE_CONFIRMATION = "delete:awaiting-confirmation"
    RESTORE_ARCHIVE = "restore:awaiting-archive"

    @property
    def flow(self) -> Flow | None:
        if self is Step.IDLE:
            return None
        return Flow(self.value.split(":", 1)[0])


# Steps that render a paginated credential listing
SELECTION_STEPS = {
    Flow.RENEW: Step.RENEW_SELECTION,
    Flow.DELETE: Step.DELETE_SELECTION,
}

FIRST_STEP = {
    Flow.CREATE: Step.CREATE_CREDENTIAL,
    Flow.RENEW: Step.RENEW_SELECTION,
    Flow.DELETE: Step.DELETE_SELECTION,
    Flow.RESTORE: Step.RESTORE_ARCHIVE,
}
