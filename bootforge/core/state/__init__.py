from .ledger import StateRecord, StateStore

__all__ = ["StateRecord", "StateStore"]
