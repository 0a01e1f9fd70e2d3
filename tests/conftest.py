import os

import pytest

# boto3 resolves a region when handler.py creates its resource at import time.
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

import handler  # noqa: E402
from registration import Registrar  # noqa: E402


class FakeTable:
    def __init__(self, name, items, error=None):
        self.name = name
        self._items = items
        self._error = error
        self.calls = 0

    def put_item(self, Item):
        self.calls += 1
        if self._error is not None:
            raise self._error
        self._items[Item["id"]] = dict(Item)
        return {}


class FakeDynamoDB:
    """In-memory stand-in for ``boto3.resource("dynamodb")``."""

    def __init__(self, error=None):
        self.tables = {}
        self.error = error
        self.opened = []

    def Table(self, name):
        items = self.tables.setdefault(name, {})
        table = FakeTable(name, items, error=self.error)
        self.opened.append(table)
        return table

    @property
    def put_calls(self):
        return sum(table.calls for table in self.opened)


class FakeContext:
    aws_request_id = "test-request-id"

    def __init__(self, remaining_ms=30000):
        self._remaining_ms = remaining_ms

    def get_remaining_time_in_millis(self):
        return self._remaining_ms


@pytest.fixture
def dynamodb(monkeypatch):
    resource = FakeDynamoDB()
    monkeypatch.setattr(handler, "registrar", Registrar(resource))
    return resource


@pytest.fixture
def table_name(monkeypatch):
    monkeypatch.setenv("USERS_TABLE_NAME", "test-users-table")
    return "test-users-table"


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def failing_dynamodb(monkeypatch):
    def install(error):
        resource = FakeDynamoDB(error=error)
        monkeypatch.setattr(handler, "registrar", Registrar(resource))
        return resource

    return install


@pytest.fixture
def expiring_context():
    return FakeContext(remaining_ms=200)


@pytest.fixture
def context_with_remaining():
    return FakeContext
