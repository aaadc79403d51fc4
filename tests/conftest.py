import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from models import User
from storage import get_store

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SECRET_KEY': 'test-secret',
    'API_PREFIX': '/api',
}

PASSWORD = 'correct-horse'


@pytest.fixture()
def app():
    """Application bound to a fresh in-memory database."""
    app = create_app(TEST_CONFIG)
    yield app
    get_store(app).shutdown()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login_as(app):
    """Return a factory that registers a user and yields a logged-in test client."""

    def _login_as(email, name='Test User'):
        client = app.test_client()
        response = client.post('/api/register', json={'name': name, 'email': email, 'password': PASSWORD})
        assert response.status_code == 201, response.get_json()
        response = client.post('/api/login', json={'email': email, 'password': PASSWORD})
        assert response.status_code == 200, response.get_json()
        return client

    return _login_as


@pytest.fixture()
def store(app):
    """Ledger store inside an application context, for service-level tests."""
    with app.app_context():
        yield get_store(app)


@pytest.fixture()
def lifecycle(app, store):
    return app.extensions['budget_lifecycle']


@pytest.fixture()
def recorder(app, store):
    return app.extensions['transaction_recorder']


@pytest.fixture()
def users(store):
    """Create two users directly in the store and return their ids."""
    alice = User(name='Alice', email='alice@example.com', password_hash=generate_password_hash(PASSWORD))
    bob = User(name='Bob', email='bob@example.com', password_hash=generate_password_hash(PASSWORD))
    with store.atomic() as session:
        session.add_all([alice, bob])
    return alice.id, bob.id
