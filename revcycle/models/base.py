"""
SQLAlchemy Base Model
Source: https://docs.sqlalchemy.org/en/20/orm/declarative_styles.html
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator, TypeEngine

CENTS = Decimal("0.01")


class Money(TypeDecorator):
    """
    Exact two-place decimal column.

    NUMERIC(12, 2) where the backend supports it natively; SQLite has no
    exact decimal storage so values are kept as their string form there.
    """

    impl = Numeric(12, 2)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(32))
        return dialect.type_descriptor(Numeric(12, 2, asdecimal=True))

    def process_bind_param(self, value: Optional[Decimal], dialect: Dialect) -> Any:
        if value is None:
            return None
        value = Decimal(value).quantize(CENTS)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(str(value)).quantize(CENTS)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Source: https://docs.sqlalchemy.org/en/20/orm/mapping_styles.html#orm-declarative-mapping
    """

    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeStampedModel:
    """
    Mixin for models with created_at and updated_at timestamps.

    Timestamps are set client-side so they are readable right after a flush
    without a refresh round-trip under AsyncSession.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )
