"""
Database module initialization.
Exports database components for use throughout the application.
"""

from wagerbook.database.base import Base
from wagerbook.database.session import (
    check_db_connection,
    create_engine_from_settings,
    create_session_factory,
    create_tables,
    get_db_info,
)

__all__ = [
    "Base",
    "create_engine_from_settings",
    "create_session_factory",
    "create_tables",
    "check_db_connection",
    "get_db_info",
]
