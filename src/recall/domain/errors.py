"""Exception taxonomy for the recall core.

Precondition violations are programming errors and are never retried.
Store failures are propagated unchanged so the caller can offer a retry.
Empty queues and empty undo stacks are not errors at all.
"""


class RecallError(Exception):
    """Base class for every error raised by recall."""


class ContractViolation(RecallError, ValueError):
    """A caller broke a precondition (bad state, grade, duration, ...)."""


class CardStoreError(RecallError):
    """The card store failed to read or commit a write."""


class CardNotFoundError(CardStoreError):
    """The requested card does not exist in the store."""

    def __init__(self, card_id: str):
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id
