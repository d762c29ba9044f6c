"""Tests for the approver review flow.

Covers:
- Publish pending -> published with one external create
- Concurrent publish with the same version -> exactly one wins
- Room/time conflicts block publish unless forced
- Reject -> resubmit round trip clears review metadata
- Approver saves while pending are surfaced as reviewChanges at publish
- Approver saves on published events sync outward and notify
- External calendar failures never undo a publish
"""
from tests.conftest import as_user, create_pending, create_published, create_test_user


def _setup(client):
    requester = create_test_user(client, name="Requester")
    approver = create_test_user(client, role="approver", name="Approver")
    return requester, approver


def _publish(client, approver, event, version=None, **extra):
    return client.put(f"/api/admin/events/{event['id']}/publish", params=as_user(approver),
                      json={"_version": event["_version"] if version is None else version, **extra})


def _reject(client, approver, event, reason="Room unavailable", **extra):
    return client.put(f"/api/admin/events/{event['id']}/reject", params=as_user(approver),
                      json={"_version": event["_version"], "reason": reason, **extra})


class TestPublish:
    """Publishing pending reservations."""

    def test_publish(self, client, calendar, notifier):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        resp = _publish(client, approver, pending)
        assert resp.status_code == 200
        body = resp.json()
        assert body["event"]["status"] == "published"
        assert body["event"]["_version"] == pending["_version"] + 1
        assert body["event"]["published_by"] == approver["email"]
        assert body["event"]["auto_published"] is False
        assert body["graph_synced"] is True
        assert body["event"]["graph_data"]["id"] in calendar.events
        assert len(calendar.calls_to("create")) == 1
        assert notifier.actions() == ["submitted", "published"]

    def test_external_payload(self, client, calendar):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        _publish(client, approver, pending)
        payload = calendar.calls_to("create")[0]["payload"]
        assert payload["subject"] == "Board Meeting"
        assert payload["location"] == "Room A"
        assert payload["categories"] == ["Meeting"]
        assert payload["startDateTime"].startswith("2026-11-02T10:00:00")

    def test_requester_cannot_publish(self, client):
        requester, _ = _setup(client)
        pending = create_pending(client, requester)
        resp = _publish(client, requester, pending)
        assert resp.status_code == 403

    def test_publish_draft_rejected(self, client):
        requester, approver = _setup(client)
        resp = client.post("/api/room-reservations/draft", params=as_user(requester), json={"event_title": "x"})
        draft = resp.json()["event"]
        resp = _publish(client, approver, draft)
        assert resp.status_code == 400
        assert resp.json()["currentStatus"] == "draft"

    def test_concurrent_publish_single_winner(self, client, calendar):
        requester, approver = _setup(client)
        other_approver = create_test_user(client, role="approver")
        pending = create_pending(client, requester)
        start = pending["_version"]

        first = _publish(client, approver, pending, version=start)
        second = _publish(client, other_approver, pending, version=start)

        assert first.status_code == 200
        assert first.json()["event"]["_version"] == start + 1
        assert second.status_code == 409
        body = second.json()
        assert body["error"] == "VERSION_CONFLICT"
        assert body["currentVersion"] == start + 1
        assert body["currentStatus"] == "published"
        assert body["lastModifiedBy"] == approver["email"]
        assert len(calendar.calls_to("create")) == 1

    def test_provider_failure_keeps_publish(self, client, calendar):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        calendar.fail_with = RuntimeError("provider unavailable")
        resp = _publish(client, approver, pending)
        assert resp.status_code == 200
        body = resp.json()
        assert body["graph_synced"] is False
        assert body["event"]["status"] == "published"
        assert body["event"]["graph_data"] is None


class TestConflicts:
    """Room/time conflicts at publish."""

    def test_conflict_blocks_then_force_publishes(self, client):
        requester, approver = _setup(client)
        existing = create_published(client, create_test_user(client), approver, event_title="Existing")
        pending = create_pending(client, requester, start_date_time="2026-11-02T11:00:00",
                                 end_date_time="2026-11-02T13:00:00")

        resp = _publish(client, approver, pending)
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"] == "SchedulingConflict"
        assert len(body["conflicts"]) == 1
        assert body["conflicts"][0]["id"] == existing["id"]
        assert body["conflicts"][0]["rooms"] == ["room-a"]
        assert body["_version"] == pending["_version"]

        resp = _publish(client, approver, pending, force_publish=True)
        assert resp.status_code == 200
        assert resp.json()["event"]["status"] == "published"

    def test_back_to_back_is_not_a_conflict(self, client):
        requester, approver = _setup(client)
        create_published(client, create_test_user(client), approver)
        pending = create_pending(client, requester, start_date_time="2026-11-02T12:00:00",
                                 end_date_time="2026-11-02T13:00:00")
        assert _publish(client, approver, pending).status_code == 200

    def test_other_room_is_not_a_conflict(self, client):
        requester, approver = _setup(client)
        create_published(client, create_test_user(client), approver)
        pending = create_pending(client, requester, locations=["room-b"], location_display_names=["Room B"])
        assert _publish(client, approver, pending).status_code == 200

    def test_pending_records_do_not_block(self, client):
        requester, approver = _setup(client)
        create_pending(client, create_test_user(client))
        pending = create_pending(client, requester)
        assert _publish(client, approver, pending).status_code == 200


class TestRejectResubmit:
    """Rejection and resubmission."""

    def test_reject_then_resubmit(self, client, notifier):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)

        resp = _reject(client, approver, pending)
        assert resp.status_code == 200
        rejected = resp.json()["event"]
        assert rejected["status"] == "rejected"
        assert rejected["rejection_reason"] == "Room unavailable"
        assert rejected["reviewed_by"] == approver["email"]

        resp = client.put(f"/api/room-reservations/{pending['id']}/resubmit", params=as_user(requester),
                          json={"_version": rejected["_version"], "notes": "Moved the setup earlier"})
        assert resp.status_code == 200
        event = resp.json()["event"]
        assert event["status"] == "pending"
        assert event["reviewed_at"] is None
        assert event["reviewed_by"] is None
        assert [entry["status"] for entry in event["status_history"]][-3:] == ["pending", "rejected", "pending"]
        assert notifier.actions()[-2:] == ["rejected", "resubmitted"]

    def test_reject_requires_reason(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        resp = _reject(client, approver, pending, reason="  ")
        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    def test_resubmission_can_be_disallowed(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        rejected = _reject(client, approver, pending, allow_resubmission=False).json()["event"]
        assert rejected["room_reservation_data"]["resubmissionAllowed"] is False
        resp = client.put(f"/api/room-reservations/{pending['id']}/resubmit", params=as_user(requester),
                          json={"_version": rejected["_version"]})
        assert resp.status_code == 400

    def test_only_owner_resubmits(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        rejected = _reject(client, approver, pending).json()["event"]
        resp = client.put(f"/api/room-reservations/{pending['id']}/resubmit",
                          params=as_user(create_test_user(client)), json={"_version": rejected["_version"]})
        assert resp.status_code == 403

    def test_edit_rejected_resubmits(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        rejected = _reject(client, approver, pending).json()["event"]
        resp = client.put(f"/api/room-reservations/{pending['id']}/edit", params=as_user(requester),
                          json={"_version": rejected["_version"], "attendee_count": 12})
        assert resp.status_code == 200
        event = resp.json()["event"]
        assert event["status"] == "pending"
        assert event["attendee_count"] == 12
        assert event["reviewed_by"] is None


class TestApproverSave:
    """Approver edits before and after publication."""

    def test_review_changes_surface_at_publish(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        resp = client.put(f"/api/admin/events/{pending['id']}", params=as_user(approver),
                          json={"_version": pending["_version"], "event_title": "Board Meeting (Q4)"})
        assert resp.status_code == 200
        saved = resp.json()["event"]
        assert saved["status"] == "pending"
        assert saved["room_reservation_data"]["reviewChanges"][0]["field"] == "event_title"

        resp = _publish(client, approver, saved)
        body = resp.json()
        assert body["review_changes"][0]["oldValue"] == "Board Meeting"
        assert body["review_changes"][0]["newValue"] == "Board Meeting (Q4)"
        assert "reviewChanges" not in body["event"]["room_reservation_data"]

    def test_reverted_review_change_dropped(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        first = client.put(f"/api/admin/events/{pending['id']}", params=as_user(approver),
                           json={"event_title": "Temporary"}).json()["event"]
        second = client.put(f"/api/admin/events/{pending['id']}", params=as_user(approver),
                            json={"_version": first["_version"], "event_title": "Board Meeting"}).json()["event"]
        assert second["room_reservation_data"]["reviewChanges"] == []

    def test_published_save_syncs_and_notifies(self, client, calendar, notifier):
        requester, approver = _setup(client)
        published = create_published(client, requester, approver)
        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(approver), json={
            "_version": published["_version"],
            "end_date_time": "2026-11-02T13:00:00",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["graph_synced"] is True
        assert body["event"]["status"] == "published"
        update = calendar.calls_to("update")[0]
        assert update["externalId"] == published["graph_data"]["id"]
        assert update["payload"]["endDateTime"].startswith("2026-11-02T13:00:00")
        assert notifier.actions()[-1] == "updated"

    def test_published_save_conflict_needs_force(self, client):
        requester, approver = _setup(client)
        create_published(client, create_test_user(client), approver, locations=["room-b"],
                         location_display_names=["Room B"])
        published = create_published(client, requester, approver)
        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(approver),
                          json={"_version": published["_version"], "locations": ["room-b"]})
        assert resp.status_code == 409
        assert resp.json()["error"] == "SchedulingConflict"

        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(approver), json={
            "_version": published["_version"], "locations": ["room-b"], "force_update": True,
        })
        assert resp.status_code == 200
        assert resp.json()["event"]["locations"] == ["room-b"]

    def test_stale_save(self, client):
        requester, approver = _setup(client)
        published = create_published(client, requester, approver)
        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(approver),
                          json={"_version": published["_version"] - 1, "event_title": "Late"})
        assert resp.status_code == 409
        assert resp.json()["currentVersion"] == published["_version"]

    def test_security_saves_door_times(self, client):
        requester, approver = _setup(client)
        security = create_test_user(client, department="Security")
        published = create_published(client, requester, approver)
        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(security),
                          json={"door_close_time": "13:00"})
        assert resp.status_code == 200
        assert resp.json()["event"]["door_close_time"] == "13:00"
        resp = client.put(f"/api/admin/events/{published['id']}", params=as_user(security),
                          json={"attendee_count": 200})
        assert resp.status_code == 403


class TestAdminQueries:
    """Review queue listing and lookup."""

    def test_list_by_status(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        create_published(client, requester, approver, locations=["room-c"])
        resp = client.get("/api/admin/events/", params={**as_user(approver), "status": "pending"})
        assert resp.status_code == 200
        assert [event["id"] for event in resp.json()] == [pending["id"]]

    def test_lookup_by_event_id(self, client):
        requester, approver = _setup(client)
        pending = create_pending(client, requester)
        resp = client.get(f"/api/admin/events/{pending['event_id']}", params=as_user(approver))
        assert resp.status_code == 200
        assert resp.json()["id"] == pending["id"]

    def test_requester_cannot_list(self, client):
        requester, _ = _setup(client)
        resp = client.get("/api/admin/events/", params=as_user(requester))
        assert resp.status_code == 403
