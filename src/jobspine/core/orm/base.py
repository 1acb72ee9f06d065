"""Declarative base and type-map for jobspine tables.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
so Mapped columns can use plain Python types:

* ``str``   -> ``Text``
* ``int``   -> ``Integer``
* ``bool``  -> ``Boolean``
* ``datetime.datetime`` -> ``DateTime(timezone=True)``
* ``dict``  -> ``JSON``
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase


class JobSpineBase(DeclarativeBase):
    """Shared declarative base for every jobspine table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Boolean,
        datetime.datetime: DateTime(timezone=True),
        dict: JSON,
    }
