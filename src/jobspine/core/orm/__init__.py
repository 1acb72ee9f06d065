"""SQLAlchemy 2.0 ORM layer for jobspine.

Modules
-------
base        JobSpineBase (declarative base)
session     Engine factory, JobSpineSession, init_db
tables      JobTable, JobLogTable
"""

from __future__ import annotations

from jobspine.core.orm.base import JobSpineBase
from jobspine.core.orm.session import (
    JobSpineSession,
    create_jobspine_engine,
    init_db,
    jobspine_session_factory,
)
from jobspine.core.orm.tables import JobLogTable, JobTable

__all__ = [
    "JobSpineBase",
    "JobSpineSession",
    "create_jobspine_engine",
    "jobspine_session_factory",
    "init_db",
    "JobTable",
    "JobLogTable",
]
