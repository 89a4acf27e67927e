from app.db.models import Base, User, Survey, TokenTransaction, TransactionKind
from app.db.database import init_db, drop_db, async_session_maker, engine

__all__ = [
    "Base",
    "User",
    "Survey",
    "TokenTransaction",
    "TransactionKind",
    # Database
    "init_db",
    "drop_db",
    "async_session_maker",
    "engine",
]
