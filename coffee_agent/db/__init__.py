"""Database initialization and persistence layer."""

from coffee_agent.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from coffee_agent.db.models import Base, CoffeeChunkDB, CoffeeDB
from coffee_agent.db.repositories import CatalogRepository, ChunkRepository, commit

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "CoffeeDB",
    "CoffeeChunkDB",
    # Repositories
    "CatalogRepository",
    "ChunkRepository",
    "commit",
]
