import asyncio
import json
from datetime import date, datetime

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from assignment_tracker.main import create_app
from assignment_tracker.routers.assignments import stop_sender
from assignment_tracker.settings import Settings

from conftest import create_assignment_payload, days_from_today


def assert_item_shape(item: dict):
    for key in ["id", "title", "course", "description", "due_date", "priority", "completed", "created_at"]:
        assert key in item
    for key in ["urgency", "days_until_due", "due_label"]:
        assert key in item
    assert isinstance(item["id"], str)
    assert isinstance(item["completed"], bool)
    date.fromisoformat(item["due_date"])
    datetime.fromisoformat(item["created_at"].replace("Z", "+00:00"))


def list_view(client, **params):
    res = client.get("/api/v1/assignments/", params=params)
    assert res.status_code == 200
    return res.json()


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] == "memory"
        assert data["ready"] is True
        assert data["subscription"] == "ready"

    def test_courses(self, client):
        res = client.get("/api/v1/courses")
        assert res.status_code == 200
        courses = res.json()
        assert "Chemistry" in courses
        assert len(courses) == 30


class TestAssignmentsCRUD:
    def test_create_then_listed_through_subscription(self, client):
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(title="Read chapter 3"))
        assert res.status_code == 201
        ack = res.json()
        assert ack["title"] == "Success!"
        assert ack["message"] == "Assignment added successfully."

        view = list_view(client)
        assert view["state"] == "ready"
        assert view["count"] == 1
        assert view["count_label"] == "1 assignment"
        item = view["items"][0]
        assert_item_shape(item)
        assert item["id"] == ack["id"]
        assert item["title"] == "Read chapter 3"
        assert item["completed"] is False
        assert item["priority"] == "medium"

    def test_create_defaults_description_and_priority(self, client):
        payload = {"title": "Quiz prep", "course": "Physics", "due_date": days_from_today(10)}
        res = client.post("/api/v1/assignments/", json=payload)
        assert res.status_code == 201
        item = list_view(client)["items"][0]
        assert item["description"] == ""
        assert item["priority"] == "medium"

    def test_list_ordered_by_due_date(self, client):
        for title, days in [("Later", 9), ("Sooner", 2), ("Middle", 5)]:
            client.post("/api/v1/assignments/", json=create_assignment_payload(title=title, due_date=days_from_today(days)))
        titles = [i["title"] for i in list_view(client)["items"]]
        assert titles == ["Sooner", "Middle", "Later"]

    def test_set_completed_and_not_found(self, client):
        aid = client.post("/api/v1/assignments/", json=create_assignment_payload(title="Lab")).json()["id"]

        res = client.patch(f"/api/v1/assignments/{aid}", json={"completed": True})
        assert res.status_code == 200
        assert res.json()["title"] == "Assignment completed!"
        assert res.json()["message"] == "Lab has been updated."
        assert list_view(client)["items"][0]["completed"] is True

        res_nf = client.patch("/api/v1/assignments/missing", json={"completed": True})
        assert res_nf.status_code == 404
        assert res_nf.json()["detail"] == "Assignment not found"

    def test_toggle_twice_restores_original_state(self, client):
        aid = client.post("/api/v1/assignments/", json=create_assignment_payload()).json()["id"]

        first = client.post(f"/api/v1/assignments/{aid}/toggle")
        assert first.status_code == 200
        assert first.json()["title"] == "Assignment completed!"
        assert list_view(client)["items"][0]["completed"] is True

        second = client.post(f"/api/v1/assignments/{aid}/toggle")
        assert second.status_code == 200
        assert second.json()["title"] == "Assignment marked incomplete"
        assert list_view(client)["items"][0]["completed"] is False

    def test_toggle_not_found(self, client):
        res = client.post("/api/v1/assignments/nope/toggle")
        assert res.status_code == 404
        assert res.json()["detail"] == "Assignment not found"

    def test_delete_assignment(self, client):
        aid = client.post("/api/v1/assignments/", json=create_assignment_payload(title="ToDelete")).json()["id"]

        res_del = client.delete(f"/api/v1/assignments/{aid}")
        assert res_del.status_code == 200
        assert res_del.json()["title"] == "Assignment deleted"

        view = list_view(client)
        assert view["state"] == "empty"
        assert view["items"] == []

        res_del_again = client.delete(f"/api/v1/assignments/{aid}")
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Assignment not found"


class TestListFiltering:
    def seed(self, client):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Bio lab", course="Biology"))
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Essay", course="English I"))
        done = client.post("/api/v1/assignments/", json=create_assignment_payload(title="Cells", course="Biology")).json()
        client.patch(f"/api/v1/assignments/{done['id']}", json={"completed": True})

    def test_filter_by_course(self, client):
        self.seed(client)
        view = list_view(client, course="Biology")
        assert view["selected_course"] == "Biology"
        assert {i["title"] for i in view["items"]} == {"Bio lab", "Cells"}
        assert view["total"] == 3

    def test_hide_completed(self, client):
        self.seed(client)
        view = list_view(client, show_completed="false")
        assert all(i["completed"] is False for i in view["items"])
        assert view["count"] == 2

    def test_no_match_state(self, client):
        self.seed(client)
        view = list_view(client, course="Band")
        assert view["state"] == "no_match"
        assert view["empty_message"] == "No assignments match your current filters."
        assert view["count_label"] == "0 assignments"

    def test_empty_state(self, client):
        view = list_view(client)
        assert view["state"] == "empty"
        assert view["items"] == []
        assert view["empty_message"] == "Get started by adding your first assignment!"

    def test_urgency_in_items(self, client):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Tomorrow", due_date=days_from_today(1)))
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Late", due_date=days_from_today(-2)))
        items = {i["title"]: i for i in list_view(client)["items"]}
        assert items["Tomorrow"]["urgency"] == "Due Tomorrow"
        assert items["Tomorrow"]["due_label"] == "1 day left"
        assert items["Late"]["urgency"] == "Overdue"
        assert items["Late"]["due_label"] == "2 days overdue"

    def test_urgency_uses_viewer_date(self, client):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Report", due_date="2030-01-10"))

        (item,) = list_view(client, today="2030-01-09")["items"]
        assert item["urgency"] == "Due Tomorrow"
        assert item["days_until_due"] == 1

        (item,) = list_view(client, today="2030-01-10")["items"]
        assert item["urgency"] == "Due Today"
        assert item["due_label"] == "0 days left"

        res = client.get("/api/v1/assignments/", params={"today": "yesterday"})
        assert res.status_code == 422


class TestValidationErrors:
    def test_empty_title_rejected_before_store_call(self, client, documents):
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(title="  "))
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)
        assert documents.add_calls == 0

    def test_missing_course_or_due_date_rejected(self, client, documents):
        payload = create_assignment_payload()
        del payload["course"]
        assert client.post("/api/v1/assignments/", json=payload).status_code == 422

        payload = create_assignment_payload(due_date="")
        assert client.post("/api/v1/assignments/", json=payload).status_code == 422
        assert documents.add_calls == 0

    def test_unknown_course_and_bad_priority(self, client):
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(course="Underwater Basket Weaving"))
        assert res.status_code == 422
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(priority="urgent"))
        assert res.status_code == 422

    def test_bad_due_date(self, client):
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(due_date="not-a-date"))
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"

    def test_title_length_checked_after_trimming(self, client):
        padded = "  " + "a" * 200 + "  "
        res = client.post("/api/v1/assignments/", json=create_assignment_payload(title=padded))
        assert res.status_code == 201
        assert list_view(client)["items"][0]["title"] == "a" * 200

        res = client.post("/api/v1/assignments/", json=create_assignment_payload(title="a" * 201))
        assert res.status_code == 422

    def test_patch_requires_completed(self, client):
        aid = client.post("/api/v1/assignments/", json=create_assignment_payload()).json()["id"]
        res = client.patch(f"/api/v1/assignments/{aid}", json={})
        assert res.status_code == 422


class TestOperationErrors:
    def test_failed_create_leaves_list_unchanged(self, client, documents):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Kept"))
        documents.writes_fail = True

        res = client.post("/api/v1/assignments/", json=create_assignment_payload(title="Lost"))
        assert res.status_code == 502
        body = res.json()
        assert body["error"] == "OperationError"
        assert body["action"] == "create"
        assert body["message"] == "Failed to add assignment. Please try again."
        assert [i["title"] for i in list_view(client)["items"]] == ["Kept"]

    def test_failed_update_and_delete(self, client, documents):
        aid = client.post("/api/v1/assignments/", json=create_assignment_payload()).json()["id"]
        documents.writes_fail = True

        res = client.post(f"/api/v1/assignments/{aid}/toggle")
        assert res.status_code == 502
        assert res.json()["message"] == "Failed to update assignment."

        res = client.delete(f"/api/v1/assignments/{aid}")
        assert res.status_code == 502
        assert res.json()["message"] == "Failed to delete assignment."
        assert list_view(client)["items"][0]["completed"] is False


class TestConfigurationError:
    def test_data_operations_disabled(self):
        app = create_app(Settings(persistence_backend="firestore"))
        with TestClient(app) as client:
            res = client.get("/api/v1/assignments/")
            assert res.status_code == 503
            body = res.json()
            assert body["error"] == "ConfigurationError"
            assert "firestore" in body["detail"]

            res = client.post("/api/v1/assignments/", json=create_assignment_payload())
            assert res.status_code == 503

            health = client.get("/health").json()
            assert health["ready"] is False
            assert health["message"] == "Configuration error"

    def test_stream_reports_error_and_closes(self):
        app = create_app(Settings(persistence_backend="firestore"))
        with TestClient(app) as client:
            with client.websocket_connect("/api/v1/assignments/stream") as ws:
                view = ws.receive_json()
                assert view["state"] == "error"
                assert "firestore" in view["banner"]


class TestLiveStream:
    def test_pushes_snapshot_on_every_change(self, client):
        with client.websocket_connect("/api/v1/assignments/stream") as ws:
            initial = ws.receive_json()
            assert initial["state"] == "empty"

            aid = client.post("/api/v1/assignments/", json=create_assignment_payload(title="Live")).json()["id"]
            added = ws.receive_json()
            assert added["state"] == "ready"
            assert [i["id"] for i in added["items"]] == [aid]

            client.post(f"/api/v1/assignments/{aid}/toggle")
            toggled = ws.receive_json()
            assert toggled["items"][0]["completed"] is True

            client.delete(f"/api/v1/assignments/{aid}")
            removed = ws.receive_json()
            assert removed["state"] == "empty"

    def test_filters_rerender_current_snapshot(self, client):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Bio", course="Biology"))
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Chem", course="Chemistry"))

        with client.websocket_connect("/api/v1/assignments/stream?course=Biology") as ws:
            first = ws.receive_json()
            assert [i["title"] for i in first["items"]] == ["Bio"]

            ws.send_text(json.dumps({"course": "Chemistry", "show_completed": True}))
            second = ws.receive_json()
            assert second["selected_course"] == "Chemistry"
            assert [i["title"] for i in second["items"]] == ["Chem"]

            ws.send_text("not json")
            ws.send_text(json.dumps({"course": "all", "show_completed": True}))
            third = ws.receive_json()
            assert third["count"] == 2

    def test_stream_renders_urgency_for_viewer_date(self, client):
        client.post("/api/v1/assignments/", json=create_assignment_payload(title="Quiz", due_date="2030-01-10"))

        with client.websocket_connect("/api/v1/assignments/stream?today=2030-01-09") as ws:
            first = ws.receive_json()
            assert first["items"][0]["urgency"] == "Due Tomorrow"

            ws.send_text(json.dumps({"course": "all", "show_completed": True, "today": "2030-01-11"}))
            second = ws.receive_json()
            assert second["items"][0]["urgency"] == "Overdue"
            assert second["items"][0]["due_label"] == "1 day overdue"

    def test_stop_sender_tolerates_failed_send(self):
        async def failed_send():
            raise WebSocketDisconnect(code=1006)

        async def scenario():
            sender = asyncio.create_task(failed_send())
            await asyncio.sleep(0)
            await stop_sender(sender)
            return sender.done()

        assert asyncio.run(scenario()) is True

