import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["school_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(main.app)
