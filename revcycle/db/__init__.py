"""
Database module for the Revenue-Cycle Claims Engine.

Exports database connection utilities.
"""

from revcycle.db.connection import (
    build_engine,
    build_session_maker,
    check_db_connection,
    close_db_connection,
    create_all,
    get_engine,
    get_session_maker,
)

__all__ = [
    "build_engine",
    "build_session_maker",
    "check_db_connection",
    "close_db_connection",
    "create_all",
    "get_engine",
    "get_session_maker",
]
