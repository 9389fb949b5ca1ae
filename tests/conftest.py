from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from assignment_tracker.documents import InMemoryDocumentStore
from assignment_tracker.errors import DocumentStoreError
from assignment_tracker.main import create_app
from assignment_tracker.schemas import Assignment
from assignment_tracker.settings import Settings


class FlakyDocumentStore(InMemoryDocumentStore):
    """In-memory store whose queries or writes can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.queries_fail = False
        self.writes_fail = False
        self.add_calls = 0

    def _query(self, collection, order_by):
        if self.queries_fail:
            raise DocumentStoreError("query failed")
        return super()._query(collection, order_by)

    def add(self, collection, data):
        self.add_calls += 1
        return super().add(collection, data)

    def _insert(self, collection, doc):
        if self.writes_fail:
            raise DocumentStoreError("insert failed")
        super()._insert(collection, doc)

    def _patch(self, collection, doc_id, fields):
        if self.writes_fail:
            raise DocumentStoreError("update failed")
        return super()._patch(collection, doc_id, fields)

    def _remove(self, collection, doc_id):
        if self.writes_fail:
            raise DocumentStoreError("delete failed")
        return super()._remove(collection, doc_id)


def days_from_today(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


def create_assignment_payload(
    title="Essay draft",
    course="English I",
    description="Five paragraphs",
    due_date=None,
    priority="medium",
):
    payload = {
        "title": title,
        "course": course,
        "description": description,
        "priority": priority,
    }
    payload["due_date"] = due_date if due_date is not None else days_from_today(7)
    return payload


def make_assignment(
    id: str = "a1",
    title: str = "Worksheet",
    course: str = "Biology",
    due_date: Optional[date] = None,
    completed: bool = False,
    priority: str = "medium",
) -> Assignment:
    return Assignment(
        id=id,
        title=title,
        course=course,
        description="",
        due_date=due_date or date.today(),
        priority=priority,
        completed=completed,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def documents() -> FlakyDocumentStore:
    return FlakyDocumentStore()


@pytest.fixture
def app(documents):
    return create_app(Settings(), document_store=documents)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
