import os

# must be set before config/auth are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime
from decimal import Decimal

import pytest

from database import Database
from models import DiningTable, MenuItem

NOW = datetime(2025, 5, 1, 12, 0)


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.init_schema()
    yield db
    db.engine.dispose()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def menu(database):
    """Catalog: 1 spring rolls 4.00, 2 pad thai 8.25, 7 burger 5.00, 9 lemonade 3.50."""
    with database.transaction() as session:
        session.add_all([
            MenuItem(id=1, name="Spring rolls", price=Decimal("4.00"), available=True),
            MenuItem(id=2, name="Pad thai", price=Decimal("8.25"), available=True),
            MenuItem(id=7, name="Burger", price=Decimal("5.00"), available=True),
            MenuItem(id=9, name="Lemonade", price=Decimal("3.50"), available=True),
        ])


@pytest.fixture
def tables(database):
    """Tables 1-4 seat four, 5 seats eight, 6 is out of service."""
    with database.transaction() as session:
        for table_id in range(1, 5):
            session.add(DiningTable(id=table_id, capacity=4, is_active=True))
        session.add(DiningTable(id=5, capacity=8, is_active=True))
        session.add(DiningTable(id=6, capacity=4, is_active=False))


def count_rows(database, model, **filters):
    with database.transaction() as session:
        return session.query(model).filter_by(**filters).count()
