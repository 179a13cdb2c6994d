"""
Integration Tests for the HTTP API

Drive the FastAPI app through TestClient with the database dependency
overridden by an in-memory SQLite session.
"""
from datetime import date, time

from booking.records import AppointmentStatus

from conftest import ADMIN_HEADERS, FUTURE_DAY, add_appointment, user_headers

DAY = FUTURE_DAY.isoformat()


def _book(client, u, start="10:00", **extra):
    body = {"title": "Consulta", "date": DAY, "start_time": start}
    body.update(extra)
    return client.post("/appointments", json=body, headers=user_headers(u))


# =============================================================================
# Slots and booking
# =============================================================================


class TestSlotsAndBooking:
    """Tests for /slots and /appointments."""

    def test_slots_default_config(self, client):
        resp = client.get("/slots", params={"date": DAY})

        assert resp.status_code == 200
        starts = [s["start_time"] for s in resp.json()["slots"]]
        assert starts == ["09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00"]
        assert resp.json()["slots"][0]["end_time"] == "10:00"

    def test_slots_bad_date(self, client):
        assert client.get("/slots", params={"date": "not-a-date"}).status_code == 400

    def test_book_and_slot_disappears(self, client, user):
        resp = _book(client, user, mode="online", url="https://meet.example/r", password="pw")

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "pending"
        assert body["end_time"] == "11:00"
        assert body["mode"] == "online"
        assert body["url"] == "https://meet.example/r"

        starts = [s["start_time"] for s in client.get("/slots", params={"date": DAY}).json()["slots"]]
        assert "10:00" not in starts

    def test_double_booking_gets_conflict(self, client, user, other_user):
        assert _book(client, user).status_code == 201

        resp = _book(client, other_user)

        assert resp.status_code == 409
        assert resp.json()["error"] == "SlotTaken"
        assert resp.json()["detail"] == "Slot no longer available, please choose another time."

    def test_missing_title(self, client, user):
        resp = _book(client, user, title="   ")

        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"

    def test_start_with_seconds(self, client, user):
        resp = _book(client, user, start="09:00:30")

        assert resp.status_code == 422
        assert resp.json()["error"] == "ValidationError"

    def test_booking_requires_user(self, client):
        resp = client.post("/appointments", json={"title": "x", "date": DAY, "start_time": "10:00"})

        assert resp.status_code == 401

    def test_unknown_user(self, client):
        resp = client.post(
            "/appointments",
            json={"title": "x", "date": DAY, "start_time": "10:00"},
            headers={"X-User-Id": "999"},
        )

        assert resp.status_code == 401

    def test_my_appointments_promotes_elapsed(self, client, db, user):
        add_appointment(db, user.id, date(2000, 1, 1), time(9, 0), time(10, 0), AppointmentStatus.approved)

        resp = client.get("/appointments/mine", headers=user_headers(user))

        assert resp.status_code == 200
        assert [a["status"] for a in resp.json()] == ["completed"]

    def test_my_stats(self, client, user):
        _book(client, user)

        resp = client.get("/appointments/stats", headers=user_headers(user))

        assert resp.json()["by_status"]["pending"] == 1
        assert resp.json()["total"] == 1


# =============================================================================
# Admin
# =============================================================================


class TestAdmin:
    """Tests for the admin router."""

    def test_requires_token(self, client):
        assert client.get("/admin/appointments").status_code == 401
        assert client.get("/admin/appointments", headers={"X-Admin-Token": "nope"}).status_code == 401

    def test_second_decision_conflicts(self, client, user):
        appt_id = _book(client, user).json()["id"]

        resp = client.post(f"/admin/appointments/{appt_id}/approve", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        again = client.post(f"/admin/appointments/{appt_id}/reject", headers=ADMIN_HEADERS)
        assert again.status_code == 409
        assert again.json()["error"] == "InvalidTransition"

    def test_unknown_appointment(self, client):
        resp = client.post("/admin/appointments/424242/approve", headers=ADMIN_HEADERS)

        assert resp.status_code == 404

    def test_list_by_status(self, client, user):
        first = _book(client, user, start="09:00").json()["id"]
        _book(client, user, start="10:00")
        client.post(f"/admin/appointments/{first}/reject", headers=ADMIN_HEADERS)

        resp = client.get("/admin/appointments", params={"status": "pending"}, headers=ADMIN_HEADERS)

        assert [a["start_time"] for a in resp.json()] == ["10:00"]

    def test_settings_roundtrip(self, client):
        resp = client.put(
            "/admin/settings",
            json={"day_start": "08:00", "slot_minutes": 30},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json()["day_start"] == "08:00"
        assert resp.json()["slot_minutes"] == 30
        slots = client.get("/slots", params={"date": DAY}).json()["slots"]
        assert slots[0]["start_time"] == "08:00"
        assert slots[0]["end_time"] == "08:30"

    def test_invalid_settings(self, client):
        resp = client.put(
            "/admin/settings",
            json={"break_start": "18:00", "break_end": "19:00"},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 422
        assert resp.json()["detail"] == "Working hours are not configured correctly."

    def test_users_crud(self, client):
        resp = client.post(
            "/admin/users",
            json={"username": "maria", "full_name": "Maria Ruiz", "phone": "+15550002222"},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 201
        user_id = resp.json()["id"]
        assert resp.json()["role"] == "user"

        dup = client.post("/admin/users", json={"username": "maria", "full_name": "x"}, headers=ADMIN_HEADERS)
        assert dup.status_code == 422

        patched = client.patch(f"/admin/users/{user_id}", json={"full_name": "Maria R."}, headers=ADMIN_HEADERS)
        assert patched.json()["full_name"] == "Maria R."

        listing = client.get("/admin/users", headers=ADMIN_HEADERS).json()
        assert [u["username"] for u in listing] == ["maria"]
        assert listing[0]["appointment_counts"]["pending"] == 0

    def test_stats(self, client, user):
        _book(client, user)
        client.post("/messages", json={"body": "hola"}, headers=user_headers(user))

        stats = client.get("/admin/stats", headers=ADMIN_HEADERS).json()

        assert stats["total_appointments"] == 1
        assert stats["by_status"]["pending"] == 1
        assert stats["this_week_appointments"] == 1
        assert stats["unread_messages"] == 1
        assert stats["total_users"] == 1


# =============================================================================
# Reschedule requests
# =============================================================================


class TestReschedule:
    """Tests for the reschedule request workflow over HTTP."""

    def _approved(self, client, u):
        appt_id = _book(client, u).json()["id"]
        client.post(f"/admin/appointments/{appt_id}/approve", headers=ADMIN_HEADERS)
        return appt_id

    def _request(self, client, u, appt_id, start="14:00", end="15:00"):
        return client.post(
            f"/appointments/{appt_id}/reschedule-requests",
            json={
                "requested_date": "2099-01-06",
                "requested_start_time": start,
                "requested_end_time": end,
                "reason": "Travel",
            },
            headers=user_headers(u),
        )

    def test_second_pending_request_conflicts(self, client, user):
        appt_id = self._approved(client, user)
        assert self._request(client, user, appt_id).status_code == 201

        resp = self._request(client, user, appt_id, start="15:00", end="16:00")

        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidTransition"

    def test_pending_appointment_cannot_be_rescheduled(self, client, user):
        appt_id = _book(client, user).json()["id"]

        resp = self._request(client, user, appt_id)

        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidTransition"

    def test_approve_request_with_mode_override(self, client, user):
        appt_id = self._approved(client, user)
        req = self._request(client, user, appt_id)
        assert req.status_code == 201
        assert req.json()["status"] == "pending"

        resp = client.post(
            f"/admin/reschedule-requests/{req.json()['id']}/approve",
            json={"mode": "online", "url": "https://meet.example/z"},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 200
        out = resp.json()
        assert out["request"]["status"] == "approved"
        assert out["appointment"]["status"] == "approved"
        assert out["appointment"]["date"] == "2099-01-06"
        assert out["appointment"]["start_time"] == "14:00"
        assert out["appointment"]["mode"] == "online"

        again = client.post(f"/admin/reschedule-requests/{req.json()['id']}/reject", headers=ADMIN_HEADERS)
        assert again.status_code == 409

    def test_approve_without_body_keeps_mode(self, client, user):
        appt_id = self._approved(client, user)
        req_id = self._request(client, user, appt_id).json()["id"]

        resp = client.post(f"/admin/reschedule-requests/{req_id}/approve", headers=ADMIN_HEADERS)

        assert resp.status_code == 200
        assert resp.json()["appointment"]["mode"] is None

    def test_reject_request(self, client, user):
        appt_id = self._approved(client, user)
        req_id = self._request(client, user, appt_id).json()["id"]

        resp = client.post(f"/admin/reschedule-requests/{req_id}/reject", headers=ADMIN_HEADERS)

        assert resp.json()["request"]["status"] == "rejected"
        assert resp.json()["appointment"]["date"] == DAY
        mine = client.get("/reschedule-requests/mine", headers=user_headers(user)).json()
        assert [r["status"] for r in mine] == ["rejected"]

    def test_pending_requests_listing(self, client, user):
        appt_id = self._approved(client, user)
        self._request(client, user, appt_id)

        resp = client.get("/admin/reschedule-requests", params={"status": "pending"}, headers=ADMIN_HEADERS)

        assert len(resp.json()) == 1

    def test_admin_direct_reschedule(self, client, user):
        appt_id = _book(client, user).json()["id"]

        resp = client.post(
            f"/admin/appointments/{appt_id}/reschedule",
            json={"new_date": "2099-01-07", "new_start_time": "15:00", "new_end_time": "16:00",
                  "mode": "in-person", "url": "dropped"},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 200
        assert resp.json()["date"] == "2099-01-07"
        assert resp.json()["status"] == "pending"
        assert resp.json()["mode"] == "in-person"
        assert resp.json()["url"] is None


# =============================================================================
# Meetings and messages
# =============================================================================


class TestMeetingsAndMessages:
    """Tests for meetings and user/admin messages."""

    def test_meeting_lifecycle(self, client, user, other_user):
        resp = client.post(
            "/admin/meetings",
            json={
                "title": "Planning",
                "date": DAY,
                "start_time": "09:00",
                "end_time": "10:00",
                "participant_ids": [user.id],
                "mode": "online",
                "url": "https://meet.example/p",
            },
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 201
        meeting = resp.json()
        assert meeting["status"] == "upcoming"
        assert meeting["participants"] == [user.id]

        mine = client.get("/meetings/mine", headers=user_headers(user)).json()
        assert [m["id"] for m in mine] == [meeting["id"]]
        assert client.get("/meetings/mine", headers=user_headers(other_user)).json() == []

        patched = client.patch(
            f"/admin/meetings/{meeting['id']}",
            json={"title": "Planning v2", "participant_ids": [user.id, other_user.id]},
            headers=ADMIN_HEADERS,
        )
        assert patched.json()["title"] == "Planning v2"
        assert patched.json()["participants"] == sorted([user.id, other_user.id])

        upcoming = client.get("/admin/meetings", params={"status": "upcoming"}, headers=ADMIN_HEADERS).json()
        assert len(upcoming) == 1
        done = client.get("/admin/meetings", params={"status": "completed"}, headers=ADMIN_HEADERS).json()
        assert done == []

        assert client.delete(f"/admin/meetings/{meeting['id']}", headers=ADMIN_HEADERS).status_code == 204
        assert client.get("/admin/meetings", headers=ADMIN_HEADERS).json() == []

    def test_invalid_meeting_window(self, client):
        resp = client.post(
            "/admin/meetings",
            json={"title": "x", "date": DAY, "start_time": "10:00", "end_time": "09:00"},
            headers=ADMIN_HEADERS,
        )

        assert resp.status_code == 422

    def test_conversation(self, client, user):
        client.post("/messages", json={"body": "hola"}, headers=user_headers(user))
        client.post(f"/admin/messages/{user.id}", json={"body": "hi!"}, headers=ADMIN_HEADERS)

        mine = client.get("/messages", headers=user_headers(user)).json()
        assert [m["body"] for m in mine] == ["hola", "hi!"]

        seen = client.post("/messages/seen", headers=user_headers(user)).json()
        assert seen["marked"] == 1

        admin_side = client.post(f"/admin/messages/{user.id}/seen", headers=ADMIN_HEADERS).json()
        assert admin_side["marked"] == 1

    def test_empty_message(self, client, user):
        resp = client.post("/messages", json={"body": " "}, headers=user_headers(user))

        assert resp.status_code == 422
