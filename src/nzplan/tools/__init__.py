"""Database tool integrations used alongside the plan resolver."""

from .nzsql import NzsqlClient, SqlResult, SqlStatus

__all__ = ["NzsqlClient", "SqlResult", "SqlStatus"]
