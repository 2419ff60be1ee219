"""
Shared fixtures.

Every test gets a fresh app over an in-memory SQLite database seeded with
four users from the identity service's USERS table.
"""
import pytest
from flask_jwt_extended import create_access_token

from groupledger import create_app
from groupledger.config import TestConfig
from groupledger.users.model import User

ALICE, BOB, CAROL, DAVE = 1, 2, 3, 4


@pytest.fixture
def app():
    app = create_app(TestConfig)
    ledger = app.extensions["group_ledger"]
    with ledger.db.transaction() as session:
        session.add_all([
            User(id=ALICE, username="alice", email="alice@example.com"),
            User(id=BOB, username="bob", email="bob@example.com"),
            User(id=CAROL, username="carol", email="carol@example.com"),
            User(id=DAVE, username="dave", email="dave@example.com"),
        ])
    yield app
    ledger.db.dispose()


@pytest.fixture
def ledger(app):
    return app.extensions["group_ledger"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth(app):
    """Bearer headers for a member id, as the identity service would issue."""
    def _headers(member_id):
        with app.app_context():
            token = create_access_token(identity=str(member_id))
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def trip(ledger):
    """Group of alice (admin), bob and carol."""
    return ledger.groups.create_group(
        name="Trip",
        budget="500.00",
        description="weekend away",
        creator_id=ALICE,
        member_ids=[BOB, CAROL],
    )["groupId"]
