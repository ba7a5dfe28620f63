"""Database schema used by the latency benchmarks."""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, Select, String, Table, select

metadata = MetaData()

# Employees table, queried by every strategy
employees = Table(
    "employees",
    metadata,
    Column("emp_no", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(256)),
    Column("last_name", String(256)),
)

# Rows fetched by a single query
ROW_LIMIT = 10

# Raw SQL used by the driver-level strategies
EMPLOYEES_SQL = (
    'SELECT "emp_no", "first_name", "last_name" FROM "employees" '
    f"LIMIT {ROW_LIMIT}"
)


def employees_select(limit: int = ROW_LIMIT) -> Select:
    """Build the bounded employees query with SQLAlchemy Core."""
    return select(employees).limit(limit)
