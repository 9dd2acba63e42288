"""Database package: engine, ORM models and the record store facade."""

from adsbook.db.engine import create_db_engine, create_session_factory
from adsbook.db.facade import (
    AdEntityDict,
    ChangeDict,
    Database,
    DriverIntentDict,
    EvaluationDict,
    EventDict,
    KivItemDict,
    PerformanceRowDict,
    PhaseDict,
    ProductDict,
    SalesRowDict,
)
from adsbook.db.orm import Base

__all__ = [
    "AdEntityDict",
    "Base",
    "ChangeDict",
    "Database",
    "DriverIntentDict",
    "EvaluationDict",
    "EventDict",
    "KivItemDict",
    "PerformanceRowDict",
    "PhaseDict",
    "ProductDict",
    "SalesRowDict",
    "create_db_engine",
    "create_session_factory",
]
