# tests/conftest.py

import pytest

@pytest.fixture(scope="module")
def app_with_db():
    """
    Creates a new app instance for a test module, sets up an in-memory database,
    and yields the app within an application context.
    """
    from app import create_app, db
    from config import TestConfig

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.session.remove()
        db.drop_all()

@pytest.fixture
def clean_db(app_with_db):
    """Empties every table so each test starts from a known state."""
    from app import db

    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    return db

@pytest.fixture
def client(app_with_db, clean_db):
    return app_with_db.test_client()
