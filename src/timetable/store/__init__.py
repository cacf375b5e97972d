"""Store adapters for the relational backend."""

from src.timetable.store.base import DataStore, Filters, TableNames
from src.timetable.store.memory import InMemoryStore
from src.timetable.store.rest import RestStore

__all__ = [
    "DataStore",
    "Filters",
    "TableNames",
    "InMemoryStore",
    "RestStore",
]
