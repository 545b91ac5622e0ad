import pytest

from amc_manager import create_app
from amc_manager.extensions import db
from amc_manager.models import User
from amc_manager.tokens import create_access_token

PASSWORD = "s3cret-pass"


@pytest.fixture()
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "BCRYPT_ROUNDS": 4,
            "MAIL_SERVER": "",
            "JWT_SECRET_KEY": "test-jwt-secret",
            "SECRET_KEY": "test-secret",
        }
    )
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """Create a user directly in the database and return its id."""

    def _make(email="user@acme.com", role="viewer", name="Test User", password=PASSWORD, is_active=True):
        with app.app_context():
            user = User(name=name, email=email, role=role, is_active=is_active)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make


@pytest.fixture()
def auth_headers(app):
    def _headers(user_id):
        with app.app_context():
            token = create_access_token(user_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user(email="admin@acme.com", role="admin", name="Admin"))


@pytest.fixture()
def manager_headers(make_user, auth_headers):
    return auth_headers(make_user(email="manager@acme.com", role="manager", name="Manager"))


@pytest.fixture()
def viewer_headers(make_user, auth_headers):
    return auth_headers(make_user(email="viewer@acme.com", role="viewer", name="Viewer"))
