"""Tests for sign-up/sign-in and the admin-only surface."""

import json

import httpx
import pytest

from conftest import reservation_body
from booking_service import config
from booking_service.main import create_app
from booking_service.notifier import WebhookNotifier
from booking_service.store import ID_PREFIX


async def create_operator_booking(client, admin_headers, **kwargs) -> dict:
    resp = await client.post("/bookings", json=reservation_body(**kwargs), headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestAuth:
    async def test_signup_ignores_requested_role(self, client):
        resp = await client.post(
            "/auth/signup",
            json={"email": "Eve@Example.com", "password": "password123", "role": "admin"},
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["user"]["role"] == "user"
        assert body["user"]["email"] == "eve@example.com"

        token = body["access_token"]
        forbidden = await client.get("/admin/bookings", headers={"Authorization": f"Bearer {token}"})
        assert forbidden.status_code == 403

    async def test_duplicate_signup_rejected(self, client):
        payload = {"email": "dup@example.com", "password": "password123"}
        assert (await client.post("/auth/signup", json=payload)).status_code == 201

        resp = await client.post("/auth/signup", json=payload)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Unable to create an account with these details"

    async def test_short_password_rejected(self, client):
        resp = await client.post("/auth/signup", json={"email": "a@example.com", "password": "short"})
        assert resp.status_code == 400

    async def test_signin_session_and_signout(self, client):
        await client.post("/auth/signup", json={"email": "sam@example.com", "password": "password123", "name": "Sam"})

        bad = await client.post("/auth/signin", json={"email": "sam@example.com", "password": "wrong-password"})
        assert bad.status_code == 401

        signin = await client.post("/auth/signin", json={"email": "sam@example.com", "password": "password123"})
        assert signin.status_code == 200
        headers = {"Authorization": f"Bearer {signin.json()['access_token']}"}

        session = await client.get("/auth/session", headers=headers)
        assert session.status_code == 200
        assert session.json()["user"]["name"] == "Sam"

        assert (await client.post("/auth/signout", headers=headers)).status_code == 204
        assert (await client.get("/auth/session", headers=headers)).status_code == 401

    async def test_missing_or_garbage_token(self, client):
        assert (await client.get("/auth/session")).status_code == 401
        resp = await client.get("/auth/session", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "unauthorized"

    async def test_auth_unconfigured_leaves_public_routes_working(self, client, monkeypatch):
        monkeypatch.setattr(config, "JWT_SECRET", None)

        signup = await client.post("/auth/signup", json={"email": "x@example.com", "password": "password123"})
        assert signup.status_code == 503
        signin = await client.post("/auth/signin", json={"email": "x@example.com", "password": "password123"})
        assert signin.status_code == 503
        admin = await client.get("/admin/bookings", headers={"Authorization": "Bearer anything"})
        assert admin.status_code == 503

        assert (await client.get("/services")).status_code == 200
        assert (await client.post("/reservations", json=reservation_body())).status_code == 201


class TestAdminGate:
    async def test_non_admin_cannot_delete_booking(self, client, store, admin_headers, user_headers):
        booking = await create_operator_booking(client, admin_headers)

        resp = await client.delete(f"/admin/bookings/{booking['id']}", headers=user_headers)

        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"
        assert await store.get(booking["id"]) is not None

    async def test_anonymous_cannot_delete_booking(self, client, store, admin_headers):
        booking = await create_operator_booking(client, admin_headers)

        assert (await client.delete(f"/bookings/{booking['id']}")).status_code == 401
        assert await store.get(booking["id"]) is not None

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/admin/bookings"),
            ("POST", "/admin/bookings/x/cancel"),
            ("POST", "/admin/notifications/test"),
        ],
    )
    async def test_user_role_forbidden_everywhere(self, client, user_headers, method, path):
        resp = await client.request(method, path, headers=user_headers)
        assert resp.status_code == 403

    async def test_user_cannot_create_admins(self, client, user_headers):
        resp = await client.post(
            "/admin/users",
            json={"email": "new-admin@example.com", "password": "password123"},
            headers=user_headers,
        )
        assert resp.status_code == 403


class TestAdminBookings:
    async def test_operator_rush_booking_defaults_to_today(self, client, admin_headers, clock):
        booking = await create_operator_booking(client, admin_headers, date=None, time=None, is_rush=True)

        assert booking["time"] == "ASAP"
        assert booking["date"] == clock().date().isoformat()
        assert booking["total_price"] == 50

    async def test_operator_booking_respects_slot(self, client, admin_headers):
        await create_operator_booking(client, admin_headers)

        resp = await client.post("/bookings", json=reservation_body(), headers=admin_headers)
        assert resp.status_code == 409

    async def test_list_includes_contact_details_and_filters(self, client, admin_headers):
        await create_operator_booking(client, admin_headers)
        await create_operator_booking(client, admin_headers, date="2025-03-11")

        everything = await client.get("/admin/bookings", headers=admin_headers)
        assert everything.status_code == 200
        assert [b["customer_email"] for b in everything.json()["bookings"]] == ["a@b.com", "a@b.com"]

        one_day = await client.get("/admin/bookings", params={"date": "2025-03-11"}, headers=admin_headers)
        assert [b["date"] for b in one_day.json()["bookings"]] == ["2025-03-11"]

    async def test_cancel_frees_slot_and_keeps_record(self, client, store, admin_headers):
        booking = await create_operator_booking(client, admin_headers)

        resp = await client.post(f"/admin/bookings/{booking['id']}/cancel", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        assert (await client.get("/bookings/2025-03-10")).json()["bookings"] == []
        cancelled = await client.get("/admin/bookings", params={"status": "cancelled"}, headers=admin_headers)
        assert [b["id"] for b in cancelled.json()["bookings"]] == [booking["id"]]

        await create_operator_booking(client, admin_headers)
        assert len(await store.get_by_prefix(ID_PREFIX)) == 2

    async def test_cancel_unknown_booking(self, client, admin_headers):
        resp = await client.post("/admin/bookings/booking:missing/cancel", headers=admin_headers)
        assert resp.status_code == 404

    async def test_delete_is_idempotent(self, client, store, admin_headers):
        booking = await create_operator_booking(client, admin_headers)

        for _ in range(2):
            resp = await client.delete(f"/admin/bookings/{booking['id']}", headers=admin_headers)
            assert resp.status_code == 204
        assert await store.get(booking["id"]) is None

    async def test_admin_creates_admin(self, client, admin_headers):
        resp = await client.post(
            "/admin/users",
            json={"email": "ops@example.com", "password": "password123", "name": "Ops"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["role"] == "admin"

        signin = await client.post("/auth/signin", json={"email": "ops@example.com", "password": "password123"})
        token = signin.json()["access_token"]
        listed = await client.get("/admin/bookings", headers={"Authorization": f"Bearer {token}"})
        assert listed.status_code == 200

    async def test_notification_check_when_disabled(self, client, admin_headers):
        resp = await client.post("/admin/notifications/test", headers=admin_headers)
        assert resp.json() == {"enabled": False, "delivered": False}

    async def test_operator_booking_rejects_unlisted_time_label(self, client, store, admin_headers):
        await create_operator_booking(client, admin_headers)

        resp = await client.post("/bookings", json=reservation_body(time="10:00 am"), headers=admin_headers)

        assert resp.status_code == 400
        assert resp.json()["fields"] == {"time": "not an offered time slot"}
        assert len(await store.get_by_prefix(ID_PREFIX)) == 1

    async def test_operator_booking_normalizes_date(self, client, admin_headers):
        await create_operator_booking(client, admin_headers)

        resp = await client.post("/bookings", json=reservation_body(date="20250310"), headers=admin_headers)
        assert resp.status_code == 409


async def test_notification_check_uses_service_clock(store, redis_client, payments, clock, admin_headers):
    sent = []

    def accept(request):
        sent.append(json.loads(request.content))
        return httpx.Response(204)

    notifier = WebhookNotifier("https://hooks.example.com/bookings", transport=httpx.MockTransport(accept))
    app = create_app(
        store=store,
        redis_client=redis_client,
        payment_adapter=payments,
        notifier=notifier,
        clock=clock,
        rate_limit_per_minute=0,
    )

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post("/admin/notifications/test", headers=admin_headers)

    assert resp.json()["delivered"] is True
    assert sent[0]["event_type"] == "booking.test"
    assert sent[0]["data"]["date"] == "2025-03-09"
