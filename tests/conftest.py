import pytest

from application_relay.main import create_app

from .helpers import API_KEY, ORIGIN, FakeTransport, make_settings


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def app(transport):
    return create_app(make_settings(), transport=transport)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_KEY}", "Origin": ORIGIN}
