# Domain Package
from .deck_config import DeckConfig, LeechAction, NewCardOrder
from .errors import CardNotFoundError, CardStoreError, ContractViolation, RecallError
from .models import (
    Card,
    CardState,
    DailyCounters,
    Grade,
    QueueStatus,
    ReviewLogEntry,
    SchedulingResult,
    UndoEntry,
)
from .ports import CardStore, Clock

__all__ = [
    "Card",
    "CardNotFoundError",
    "CardState",
    "CardStore",
    "CardStoreError",
    "Clock",
    "ContractViolation",
    "DailyCounters",
    "DeckConfig",
    "Grade",
    "LeechAction",
    "NewCardOrder",
    "QueueStatus",
    "RecallError",
    "ReviewLogEntry",
    "SchedulingResult",
    "UndoEntry",
]
