"""
Adapter Factory
Centralizes the logic for selecting the card store and clock implementations.
"""

from recall.application.config import AppConfig
from recall.domain.ports import CardStore, Clock
from recall.infrastructure.adapters.memory_store import InMemoryCardStore
from recall.infrastructure.adapters.yaml_store import YamlCardStore
from recall.infrastructure.clock import SystemClock


def get_card_store(config: AppConfig) -> CardStore:
    """
    Returns the CardStore implementation selected by config.backend.
    """
    if config.backend == "memory":
        return InMemoryCardStore()

    return YamlCardStore(config.collection_path)


def get_clock(config: AppConfig) -> Clock:
    return SystemClock(
        rollover_hour=config.rollover_hour,
        utc_offset_minutes=config.utc_offset_minutes,
    )
