import pytest
import requests
from requests.structures import CaseInsensitiveDict

from stride import create_app, db


@pytest.fixture
def make_app(tmp_path, monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    apps = []

    def factory(**overrides):
        config = {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'stride.db'}",
            'GROQ_API_KEY': None,
        }
        config.update(overrides)
        app = create_app(config)
        apps.append(app)
        return app

    yield factory

    for app in apps:
        app.extensions['stride'].shutdown()
        with app.app_context():
            db.engine.dispose()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def controller(app):
    return app.extensions['stride']


@pytest.fixture
def client(app):
    return app.test_client()


class FakeSession:
    """Stands in for requests.Session: serves registered URLs, raises ConnectionError otherwise."""

    def __init__(self):
        self.routes = {}
        self.offline = False
        self.calls = []

    def serve(self, url, body=b'', status=200, headers=None):
        self.routes[url] = (status, body, headers or {'Content-Type': 'text/html'})

    def request(self, method, url, timeout=None):
        self.calls.append((method, url))
        if self.offline or url not in self.routes:
            raise requests.ConnectionError(f"unreachable: {url}")
        status, body, headers = self.routes[url]
        response = requests.Response()
        response.status_code = status
        response._content = body
        response.url = url
        response.headers = CaseInsensitiveDict(headers)
        return response


@pytest.fixture
def network():
    return FakeSession()
