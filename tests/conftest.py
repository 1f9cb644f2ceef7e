import os
import sys

# Ensure project root is on sys.path so tests can import the `hostcharts` package
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


import pytest
from hostcharts import create_app


@pytest.fixture
def app():
    return create_app({"TESTING": True, "METRICS_SAMPLER_ENABLED": False, "REALTIME_INTERVAL": 0, "SECRET_KEY": "test"})


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def registry(app):
    return app.extensions["hostcharts"]
