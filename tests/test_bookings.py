from datetime import datetime, timedelta

from rms.common.booking_rules import utcnow
from rms.common.models import Booking, BookingStatus, Resource

TOMORROW = (utcnow() + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


def at(hour: int, minute: int = 0) -> datetime:
    return TOMORROW.replace(hour=hour, minute=minute)


def book(client, headers, resource_id: int, start: datetime, end: datetime, purpose: str = "Team sync"):
    return client.post(
        "/bookings",
        json={
            "resource_id": resource_id,
            "start_datetime": start.isoformat(),
            "end_datetime": end.isoformat(),
            "purpose": purpose,
        },
        headers=headers,
    )


def test_booking_requires_authentication(bookings_client, resource):
    missing = book(bookings_client, {}, resource.id, at(9), at(10))
    assert missing.status_code == 401
    assert missing.json()["detail"] == "Unauthorized"

    invalid = book(bookings_client, {"Authorization": "Bearer not-a-token"}, resource.id, at(9), at(10))
    assert invalid.status_code == 401
    assert invalid.json()["detail"] == "Invalid token"


def test_create_booking_starts_pending(bookings_client, resource, student, student_headers):
    response = book(bookings_client, student_headers, resource.id, at(9), at(10), purpose="  Study group  ")
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["user_id"] == student.id
    assert body["approver_id"] is None
    assert body["purpose"] == "Study group"


def test_overlapping_request_is_rejected_and_adjacent_one_accepted(
    bookings_client, resource, employee_headers, student_headers, admin_headers
):
    first = book(bookings_client, employee_headers, resource.id, at(9), at(11))
    approved = bookings_client.post(f"/bookings/{first.json()['id']}/approve", headers=admin_headers)
    assert approved.json()["status"] == "APPROVED"

    overlapping = book(bookings_client, student_headers, resource.id, at(10, 30), at(12))
    assert overlapping.status_code == 409
    assert overlapping.json()["detail"] == "Resource is already booked for this time slot"

    adjacent = book(bookings_client, student_headers, resource.id, at(11), at(12))
    assert adjacent.status_code == 201


def test_enclosing_and_enclosed_requests_conflict(bookings_client, resource, employee_headers, student_headers):
    assert book(bookings_client, employee_headers, resource.id, at(10), at(11)).status_code == 201

    assert book(bookings_client, student_headers, resource.id, at(9), at(12)).status_code == 409
    assert book(bookings_client, student_headers, resource.id, at(10, 15), at(10, 45)).status_code == 409
    assert book(bookings_client, student_headers, resource.id, at(8), at(10)).status_code == 201


def test_rejected_and_cancelled_bookings_free_the_slot(
    bookings_client, resource, employee_headers, student_headers, admin_headers
):
    first = book(bookings_client, employee_headers, resource.id, at(9), at(10)).json()
    bookings_client.post(f"/bookings/{first['id']}/reject", headers=admin_headers)
    second = book(bookings_client, student_headers, resource.id, at(9), at(10))
    assert second.status_code == 201

    bookings_client.post(f"/bookings/{second.json()['id']}/cancel", headers=student_headers)
    assert book(bookings_client, employee_headers, resource.id, at(9), at(10)).status_code == 201


def test_other_resources_do_not_conflict(bookings_client, db_session, resource, student_headers):
    other = Resource(
        resource_name="Room 102",
        building_id=resource.building_id,
        resource_type_id=resource.resource_type_id,
        floor_number=1,
    )
    db_session.add(other)
    db_session.commit()

    assert book(bookings_client, student_headers, resource.id, at(9), at(10)).status_code == 201
    assert book(bookings_client, student_headers, other.id, at(9), at(10)).status_code == 201


def test_invalid_windows_are_rejected(bookings_client, resource, student_headers):
    reversed_window = book(bookings_client, student_headers, resource.id, at(11), at(10))
    assert reversed_window.status_code == 400
    assert reversed_window.json()["detail"] == "End time must be after start time"

    empty_window = book(bookings_client, student_headers, resource.id, at(10), at(10))
    assert empty_window.status_code == 400

    yesterday = TOMORROW - timedelta(days=2)
    past = book(bookings_client, student_headers, resource.id, yesterday, yesterday + timedelta(hours=1))
    assert past.status_code == 400
    assert past.json()["detail"] == "Cannot book past dates"


def test_missing_fields_and_unknown_resource(bookings_client, resource, student_headers):
    missing = bookings_client.post("/bookings", json={"resource_id": resource.id}, headers=student_headers)
    assert missing.status_code == 422

    unknown = book(bookings_client, student_headers, resource.id + 100, at(9), at(10))
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Resource not found"


def test_timezone_aware_input_is_stored_as_utc(bookings_client, resource, student_headers):
    start = "{}T12:00:00+02:00".format(TOMORROW.date().isoformat())
    end = "{}T13:00:00+02:00".format(TOMORROW.date().isoformat())
    response = bookings_client.post(
        "/bookings",
        json={"resource_id": resource.id, "start_datetime": start, "end_datetime": end},
        headers=student_headers,
    )
    assert response.status_code == 201
    assert response.json()["start_datetime"].startswith(f"{TOMORROW.date().isoformat()}T10:00:00")

    clash = book(bookings_client, student_headers, resource.id, at(10, 30), at(11, 30))
    assert clash.status_code == 409


def test_only_admins_approve_or_reject(bookings_client, resource, student_headers, employee_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()

    for action in ("approve", "reject"):
        own = bookings_client.post(f"/bookings/{booking['id']}/{action}", headers=student_headers)
        assert own.status_code == 403
        other = bookings_client.post(f"/bookings/{booking['id']}/{action}", headers=employee_headers)
        assert other.status_code == 403

    via_put = bookings_client.put(
        f"/bookings/{booking['id']}", json={"status": "APPROVED"}, headers=student_headers
    )
    assert via_put.status_code == 403


def test_approval_records_approver_and_is_final(bookings_client, resource, admin, admin_headers, student_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()

    approved = bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["approver_id"] == admin.id

    again = bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Can only approve pending bookings"

    reject = bookings_client.post(f"/bookings/{booking['id']}/reject", headers=admin_headers)
    assert reject.status_code == 400
    assert reject.json()["detail"] == "Can only reject pending bookings"


def test_rejection_records_approver(bookings_client, resource, admin, admin_headers, student_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    rejected = bookings_client.post(f"/bookings/{booking['id']}/reject", headers=admin_headers)
    assert rejected.json()["status"] == "REJECTED"
    assert rejected.json()["approver_id"] == admin.id

    cancel = bookings_client.post(f"/bookings/{booking['id']}/cancel", headers=student_headers)
    assert cancel.status_code == 400
    assert cancel.json()["detail"] == "Can only cancel pending or approved bookings"


def test_owner_cancels_approved_booking_once(bookings_client, resource, admin_headers, student_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)

    cancelled = bookings_client.put(
        f"/bookings/{booking['id']}", json={"status": "CANCELLED"}, headers=student_headers
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "CANCELLED"

    again = bookings_client.post(f"/bookings/{booking['id']}/cancel", headers=student_headers)
    assert again.status_code == 400


def test_admin_may_cancel_and_strangers_may_not(bookings_client, resource, admin_headers, student_headers, employee_headers):
    first = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    second = book(bookings_client, student_headers, resource.id, at(10), at(11)).json()

    stranger = bookings_client.post(f"/bookings/{first['id']}/cancel", headers=employee_headers)
    assert stranger.status_code == 403

    by_admin = bookings_client.post(f"/bookings/{second['id']}/cancel", headers=admin_headers)
    assert by_admin.status_code == 200
    assert by_admin.json()["status"] == "CANCELLED"
    assert by_admin.json()["approver_id"] is None


def test_status_update_back_to_pending_is_invalid(bookings_client, resource, admin_headers, student_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)

    response = bookings_client.put(f"/bookings/{booking['id']}", json={"status": "PENDING"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot change booking status from APPROVED to PENDING"

    unknown = bookings_client.put(f"/bookings/{booking['id']}", json={"status": "ARCHIVED"}, headers=admin_headers)
    assert unknown.status_code == 422


def test_transition_on_missing_booking(bookings_client, admin_headers):
    assert bookings_client.post("/bookings/999/approve", headers=admin_headers).status_code == 404


def test_listing_is_scoped_to_owner(bookings_client, resource, admin_headers, student_headers, employee_headers):
    mine = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    theirs = book(bookings_client, employee_headers, resource.id, at(10), at(11)).json()
    bookings_client.post(f"/bookings/{theirs['id']}/approve", headers=admin_headers)

    student_view = bookings_client.get("/bookings", headers=student_headers).json()
    assert [item["id"] for item in student_view] == [mine["id"]]

    admin_view = bookings_client.get("/bookings", headers=admin_headers).json()
    assert {item["id"] for item in admin_view} == {mine["id"], theirs["id"]}

    approved_only = bookings_client.get("/bookings?status=APPROVED", headers=admin_headers).json()
    assert [item["id"] for item in approved_only] == [theirs["id"]]

    assert bookings_client.get(f"/bookings/{theirs['id']}", headers=student_headers).status_code == 403
    assert bookings_client.get(f"/bookings/{theirs['id']}", headers=admin_headers).status_code == 200


def test_availability(bookings_client, resource, student_headers):
    book(bookings_client, student_headers, resource.id, at(9), at(11))

    def available(start: datetime, end: datetime) -> bool:
        response = bookings_client.get(
            "/bookings/availability",
            params={
                "resource_id": resource.id,
                "start_datetime": start.isoformat(),
                "end_datetime": end.isoformat(),
            },
            headers=student_headers,
        )
        assert response.status_code == 200
        return response.json()["available"]

    assert available(at(10, 30), at(12)) is False
    assert available(at(11), at(12)) is True
    assert available(at(7), at(9)) is True


def test_delete_booking(bookings_client, db_session, resource, student_headers, employee_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()

    assert bookings_client.delete(f"/bookings/{booking['id']}", headers=employee_headers).status_code == 403
    assert bookings_client.delete(f"/bookings/{booking['id']}", headers=student_headers).status_code == 204
    assert db_session.get(Booking, booking["id"]) is None


def test_owner_cannot_delete_decided_bookings(bookings_client, resource, admin_headers, student_headers):
    rejected = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    bookings_client.post(f"/bookings/{rejected['id']}/reject", headers=admin_headers)
    approved = book(bookings_client, student_headers, resource.id, at(10), at(11)).json()
    bookings_client.post(f"/bookings/{approved['id']}/approve", headers=admin_headers)

    for booking in (rejected, approved):
        response = bookings_client.delete(f"/bookings/{booking['id']}", headers=student_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Only pending or cancelled bookings can be deleted"

    bookings_client.post(f"/bookings/{approved['id']}/cancel", headers=student_headers)
    assert bookings_client.delete(f"/bookings/{approved['id']}", headers=student_headers).status_code == 204
    assert bookings_client.delete(f"/bookings/{rejected['id']}", headers=admin_headers).status_code == 204


def test_dashboard_stats(bookings_client, resource, admin_headers, student_headers, employee_headers):
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    book(bookings_client, employee_headers, resource.id, at(10), at(11))
    bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)

    admin_stats = bookings_client.get("/dashboard/stats", headers=admin_headers).json()
    assert admin_stats["total_resources"] == 1
    assert admin_stats["total_bookings"] == 2
    assert admin_stats["pending_approvals"] == 1
    assert admin_stats["total_users"] == 3
    assert admin_stats["upcoming_bookings"] == 1
    assert len(admin_stats["recent_bookings"]) == 2
    assert admin_stats["recent_bookings"][0]["id"] > admin_stats["recent_bookings"][1]["id"]
    assert booking["id"] in {item["id"] for item in admin_stats["recent_bookings"]}

    student_stats = bookings_client.get("/dashboard/stats", headers=student_headers).json()
    assert student_stats["my_bookings"] == 1
    assert "pending_approvals" not in student_stats
    assert "recent_bookings" not in student_stats
    assert [item["id"] for item in student_stats["upcoming_bookings"]] == [booking["id"]]


def test_status_change_publishes_event(bookings_client, resource, admin_headers, student_headers, monkeypatch):
    published = []
    monkeypatch.setattr(
        "rms.services.bookings.app.publish_booking_event",
        lambda event, booking: published.append((event, booking.id, BookingStatus(booking.status))),
    )
    booking = book(bookings_client, student_headers, resource.id, at(9), at(10)).json()
    bookings_client.post(f"/bookings/{booking['id']}/approve", headers=admin_headers)

    assert published == [
        ("booking.created", booking["id"], BookingStatus.PENDING),
        ("booking.approved", booking["id"], BookingStatus.APPROVED),
    ]
