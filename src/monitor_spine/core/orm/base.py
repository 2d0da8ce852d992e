"""Declarative base, mixins and type-map for all monitor-spine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Mixins
------
* **EntityMixin** -- ``key`` / ``state`` / ``timestamp`` shared by every
  materialized entity kind.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class MonitorBase(DeclarativeBase):
    """Shared declarative base for every monitor-spine table.

    * ``str``   → ``Text``
    * ``int``   → ``BigInteger``  (engine keys and epoch-millis are 64-bit)
    """

    type_annotation_map = {
        str: Text,
        int: BigInteger,
    }


class EntityMixin:
    """Columns common to every entity kind.

    ``key`` is the engine-assigned identifier and the only idempotency
    anchor; it is never generated by the database.
    """

    key: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    state: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[int | None] = mapped_column(BigInteger)
