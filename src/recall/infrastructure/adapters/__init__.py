# Card Store Adapters
from .memory_store import InMemoryCardStore
from .yaml_store import YamlCardStore

__all__ = ["InMemoryCardStore", "YamlCardStore"]
