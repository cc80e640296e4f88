# backend/leadverify/models/common.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Enum as SQLEnum


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_type(enum_cls, name: str) -> SQLEnum:
    """
    Store a str-enum by value in a VARCHAR column.

    The migration creates plain string columns, so no native type is used
    on PostgreSQL either.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )
