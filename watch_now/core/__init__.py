"""Core: the dispatcher loop, the engine, and the thread-safe state store."""

from .dispatcher import Dispatcher
from .engine import Engine
from .state import HistoryEntry, StateStore, StateUpdate, Subscription, SubscriptionClosed
