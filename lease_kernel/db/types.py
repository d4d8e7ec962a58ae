"""
Module: lease_kernel.db.types
Responsibility: Portable column types for identifiers and money.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is stored as exact decimal text.  It is read back as the same
      ``Decimal`` on every backend, including SQLite, which has no exact
      NUMERIC type.  NEVER use float for monetary amounts.
    - UUIDs are stored as their 36-character string form.

Failure modes:
    - ValueError on binding a value that is not a number.
"""

from decimal import Decimal
from uuid import UUID as PyUUID

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class MoneyType(TypeDecorator):
    """
    Decimal amount stored as text.

    Guarantees:
        - Values round-trip exactly; Decimal("12600.00") is read back as
          Decimal("12600.00").
        - Floats are refused at bind time.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise ValueError(f"float amounts are not accepted: {value!r}")
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is not None:
            return Decimal(value)
        return None
