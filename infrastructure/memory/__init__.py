from .store import ArenaStore
from .unit_of_work import InMemoryUnitOfWork

__all__ = ["ArenaStore", "InMemoryUnitOfWork"]
