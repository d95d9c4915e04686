"""State persistence layer using PostgreSQL (SQLite for local mode)."""

from stk_engine.state.database import get_engine, get_session
from stk_engine.state.repository import EnumValueRepository, TriggerRuleRepository

__all__ = [
    "EnumValueRepository",
    "TriggerRuleRepository",
    "get_engine",
    "get_session",
]
