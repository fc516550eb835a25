"""Job utilities."""
from jobs.utils.database import (
    create_local_session,
    create_task_engine,
    create_task_session_maker,
)

__all__ = [
    "create_local_session",
    "create_task_engine",
    "create_task_session_maker",
]
