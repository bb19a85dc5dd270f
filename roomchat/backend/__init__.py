from .client import BackendClient, TABLES
from .realtime import INSERT, ChangeEvent, ChangeFeed, Subscription

__all__ = ["BackendClient", "TABLES", "INSERT", "ChangeEvent", "ChangeFeed", "Subscription"]
