"""
Record-Spine - generic relational data access over SQLAlchemy.

Typed repositories, a unit of work sharing one transaction across them, and
batched bulk upsert for SQL Server and PostgreSQL. The public API lives in
:mod:`recordspine.core` and is re-exported here.
"""

__version__ = "0.1.0"

from recordspine.core import *  # noqa
