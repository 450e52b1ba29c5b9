"""
Integration Tests: HTTP surface

Photographer routes, the token-scoped client portal, the payments webhook
and the scheduler endpoints, driven through FastAPI's TestClient.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest
from standardwebhooks import Webhook

from models.booking import Booking

WEBHOOK_SECRET = "whsec_MfKQ9r8GKYqrTwjUPD8ILPZIo2LaLaSw"


# =============================================================================
# Photographer routes
# =============================================================================

class TestBookingsApi:

    def test_requires_sign_in(self, api, photographer, signed_in):
        assert api.get("/api/bookings").status_code == 401

    def test_create_booking_with_standard_plan(self, api, photographer, client_row, signed_in):
        resp = api.post("/api/bookings", headers=signed_in, json={
            "client_id": client_row.id,
            "event_date": "2031-06-01",
            "total_price": 2000,
            "deposit_amount": 400,
            "contract_text": "Terms",
        })
        assert resp.status_code == 200
        body = resp.json()

        assert body["status"] == "draft"
        assert body["payment_status"] == "pending_deposit"
        assert [m["name"] for m in body["payment_milestones"]] == ["Deposit", "Final Payment"]
        assert body["payment_milestones"][1]["amount"] == 1600
        assert body["payment_milestones"][1]["due_date"] == "2031-05-02"
        assert body["balance"]["balance_due"] == 2000.0
        assert body["portal_url"].startswith("https://app.example.test/portal/")

    def test_deposit_defaults_to_percentage(self, api, photographer, client_row, signed_in):
        resp = api.post("/api/bookings", headers=signed_in, json={
            "client_id": client_row.id,
            "event_date": "2031-06-01",
            "total_price": 1500,
        })
        assert resp.json()["deposit_amount"] == 300.0

    def test_deposit_above_total_is_rejected(self, api, photographer, client_row, signed_in):
        resp = api.post("/api/bookings", headers=signed_in, json={
            "client_id": client_row.id,
            "event_date": "2031-06-01",
            "total_price": 100,
            "deposit_amount": 150,
        })
        assert resp.status_code == 400
        assert "error" in resp.json()

    def test_other_photographers_booking_is_not_found(self, api, db, photographer, make_booking, signed_in):
        from models.booking import Photographer

        other = Photographer(uid="someone-else", email="other@example.com")
        db.add(other)
        db.commit()
        booking = make_booking(photographer_id=other.id, client_id=None)

        assert api.get(f"/api/bookings/{booking.id}", headers=signed_in).status_code == 404

    def test_get_booking_includes_timeline(self, api, make_booking, signed_in):
        booking = make_booking(status="contract_signed", contract_signed_at=datetime.utcnow() - timedelta(hours=1))
        body = api.get(f"/api/bookings/{booking.id}", headers=signed_in).json()
        assert "contract_signed" in [e["type"] for e in body["timeline"]]
        assert body["client_name"] == "Ada Lovelace"

    def test_send_contract_emails_the_portal_link(self, api, make_booking, signed_in, sent_emails):
        booking = make_booking(contract_text="Terms")
        body = api.post(f"/api/bookings/{booking.id}/send-contract", headers=signed_in, json={}).json()
        assert body["status"] == "contract_sent"
        assert body["email_sent"] is True

        assert len(sent_emails) == 1
        email = sent_emails[0]
        assert email["to"] == "ada@example.com"
        assert email["reply_to"] == "studio@example.com"
        assert email["studio_name"] == "Golden Hour Studio"
        assert f"/portal/{booking.portal_token}" in email["html"]
        assert "$2,000.00" in email["html"]

    def test_send_contract_survives_email_failure(self, api, db, monkeypatch, make_booking, signed_in):
        import utils.notifications
        monkeypatch.setattr(utils.notifications, "send_email_smtp", lambda **kwargs: False)
        booking = make_booking(contract_text="Terms")

        resp = api.post(f"/api/bookings/{booking.id}/send-contract", headers=signed_in, json={})
        assert resp.status_code == 200
        assert resp.json()["email_sent"] is False
        db.expire_all()
        assert db.get(Booking, booking.id).status == "contract_sent"

    def test_manual_reminder_stamps_booking(self, api, db, make_booking, signed_in, sent_emails):
        booking = make_booking()
        resp = api.post(f"/api/bookings/{booking.id}/send-reminder", headers=signed_in)
        assert resp.status_code == 200
        assert len(sent_emails) == 1
        db.expire_all()
        assert db.get(Booking, booking.id).last_reminder_sent is not None

    def test_client_detail_totals(self, api, client_row, make_booking, signed_in):
        make_booking(payment_status="deposit_paid")
        body = api.get(f"/api/clients/{client_row.id}", headers=signed_in).json()
        assert body["total_value"] == 2000.0
        assert body["total_paid"] == 400.0
        assert len(body["bookings"]) == 1

    def test_public_inquiry_reuses_client(self, api, db, photographer, client_row):
        resp = api.post("/api/inquiry/goldenhour", json={
            "name": "Ada Lovelace",
            "email": "ADA@example.com",
            "service_type": "portrait",
        })
        assert resp.status_code == 200
        booking = db.get(Booking, resp.json()["booking_id"])
        assert booking.client_id == client_row.id
        assert booking.status == "inquiry"

    def test_activity_feed(self, api, make_booking, signed_in):
        make_booking(status="inquiry")
        events = api.get("/api/activity", headers=signed_in).json()["events"]
        assert [e["type"] for e in events] == ["inquiry"]


# =============================================================================
# Client portal
# =============================================================================

class TestPortalApi:

    def test_token_scopes_the_booking(self, api, make_booking):
        mine = make_booking()
        make_booking()
        body = api.get(f"/api/portal/{mine.portal_token}").json()
        assert body["id"] == mine.id
        assert body["studio_name"] == "Golden Hour Studio"
        assert "reminder_count" not in body

    def test_unknown_token(self, api, make_booking):
        make_booking()
        assert api.get("/api/portal/not-a-token").status_code == 404

    def test_sign_contract(self, api, make_booking, sent_emails):
        booking = make_booking(status="contract_sent", contract_text="Terms")
        resp = api.post(f"/api/portal/{booking.portal_token}/sign", json={"signature_name": "Ada Lovelace"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "contract_signed"
        assert resp.json()["contract_signed_by"] == "Ada Lovelace"

        again = api.post(f"/api/portal/{booking.portal_token}/sign", json={"signature_name": "Ada Lovelace"})
        assert again.status_code == 400

        assert len(sent_emails) == 1
        assert sent_emails[0]["to"] == "studio@example.com"
        assert sent_emails[0]["subject"] == "Contract signed for Ada Lovelace"

    def test_milestone_checkout_charges_fee_inclusive_gross(self, api, db, monkeypatch, make_booking):
        import routers.portal

        captured = {}

        async def fake_session(form):
            captured.update(form)
            return {"id": "cs_test_1", "url": "https://checkout.example/cs_test_1"}

        monkeypatch.setattr(routers.portal, "create_checkout_session", fake_session)
        booking = make_booking(total_price=2500, deposit_amount=500)
        deposit_id = booking.payment_milestones[0]["id"]

        resp = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"milestone_id": deposit_id})
        assert resp.status_code == 200
        body = resp.json()
        assert body["url"] == "https://checkout.example/cs_test_1"
        assert body["amount"] == 518.13
        assert body["fee_amount"] == 18.13
        assert captured["line_items[0][price_data][unit_amount]"] == "51813"
        assert captured["payment_intent_data[application_fee_amount]"] == "1813"
        assert captured["payment_intent_data[transfer_data][destination]"] == "acct_123"
        assert captured["metadata[milestone_id]"] == deposit_id
        assert captured["metadata[booking_id]"] == booking.id

        db.expire_all()
        stored = db.get(Booking, booking.id).payment_milestones[0]
        assert stored["payment_reference"] == "cs_test_1"

    def test_paid_milestone_cannot_be_charged_twice(self, api, make_booking):
        booking = make_booking()
        milestones = [dict(m) for m in booking.payment_milestones]
        milestones[0]["status"] = "paid"
        booking = make_booking(payment_milestones=milestones)

        resp = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"milestone_id": milestones[0]["id"]})
        assert resp.status_code == 400

    def test_deposit_milestone_closed_once_deposit_is_paid(self, api, make_booking):
        booking = make_booking(payment_status="deposit_paid")
        deposit_id = booking.payment_milestones[0]["id"]

        resp = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"milestone_id": deposit_id})
        assert resp.status_code == 400
        resp = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"type": "deposit"})
        assert resp.status_code == 400

    def test_checkout_requires_connected_account(self, api, db, photographer, make_booking):
        photographer.payments_account_id = None
        db.commit()
        booking = make_booking()
        resp = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"type": "deposit"})
        assert resp.status_code == 400


# =============================================================================
# Payments webhook
# =============================================================================

def _signed_request(payload: dict):
    body = json.dumps(payload)
    msg_id = "msg_1"
    ts = datetime.now(tz=timezone.utc)
    signature = Webhook(WEBHOOK_SECRET).sign(msg_id, ts, body)
    headers = {
        "webhook-id": msg_id,
        "webhook-timestamp": str(int(ts.timestamp())),
        "webhook-signature": signature,
        "content-type": "application/json",
    }
    return body, headers


class TestPaymentsWebhook:

    @pytest.fixture(autouse=True)
    def _secret(self, monkeypatch):
        import utils.payments
        monkeypatch.setattr(utils.payments, "PAYMENTS_WEBHOOK_SECRET", WEBHOOK_SECRET)

    def _event(self, booking, milestone_id):
        return {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_test_9",
                "metadata": {"booking_id": booking.id, "milestone_id": milestone_id, "type": "milestone"},
            }},
        }

    def test_bad_signature_is_rejected(self, api, make_booking):
        booking = make_booking()
        body, headers = _signed_request(self._event(booking, "x"))
        headers["webhook-signature"] = "v1,AAAA"
        assert api.post("/api/payments/webhook", content=body, headers=headers).status_code == 401

    def test_milestone_paid_then_replay_is_noop(self, api, db, make_booking):
        booking = make_booking()
        milestone_id = booking.payment_milestones[0]["id"]
        body, headers = _signed_request(self._event(booking, milestone_id))

        first = api.post("/api/payments/webhook", content=body, headers=headers)
        assert first.json() == {"received": True, "applied": True}

        db.expire_all()
        row = db.get(Booking, booking.id)
        assert row.payment_milestones[0]["status"] == "paid"
        assert row.payment_status == "partial"
        paid_at = row.payment_milestones[0]["paid_at"]

        second = api.post("/api/payments/webhook", content=body, headers=headers)
        assert second.json() == {"received": True, "applied": False}
        db.expire_all()
        assert db.get(Booking, booking.id).payment_milestones[0]["paid_at"] == paid_at

    def test_deposit_then_final_payment_settles_the_booking(self, api, db, make_booking, sent_emails):
        booking = make_booking(status="contract_signed")
        deposit_id, final_id = (m["id"] for m in booking.payment_milestones)

        deposit_event = {
            "type": "checkout.session.completed",
            "data": {"object": {
                "id": "cs_deposit",
                "metadata": {"booking_id": booking.id, "type": "deposit", "base_amount": "400.00"},
            }},
        }
        body, headers = _signed_request(deposit_event)
        assert api.post("/api/payments/webhook", content=body, headers=headers).json()["applied"] is True

        db.expire_all()
        row = db.get(Booking, booking.id)
        assert row.payment_status == "deposit_paid"
        assert row.payment_milestones[0]["status"] == "paid"

        body, headers = _signed_request(self._event(booking, final_id))
        assert api.post("/api/payments/webhook", content=body, headers=headers).json()["applied"] is True

        db.expire_all()
        row = db.get(Booking, booking.id)
        assert row.payment_status == "paid"
        assert row.status == "completed"
        portal = api.get(f"/api/portal/{booking.portal_token}").json()
        assert portal["balance"]["paid_amount"] == 2000.0
        assert portal["balance"]["balance_due"] == 0.0

        again = api.post(f"/api/portal/{booking.portal_token}/checkout", json={"milestone_id": deposit_id})
        assert again.status_code == 400

        assert [e["to"] for e in sent_emails] == ["studio@example.com", "studio@example.com"]
        assert "$400.00" in sent_emails[0]["subject"]
        assert "Final Payment" in sent_emails[1]["html"]

    def test_other_events_are_acknowledged(self, api):
        body, headers = _signed_request({"type": "payment_intent.created", "data": {"object": {}}})
        assert api.post("/api/payments/webhook", content=body, headers=headers).json() == {
            "received": True, "applied": False,
        }


# =============================================================================
# Scheduler endpoints
# =============================================================================

class TestCronApi:

    @pytest.fixture
    def cron_secret(self, monkeypatch):
        import core.auth
        monkeypatch.setattr(core.auth, "CRON_SECRET", "s3cret")
        return {"Authorization": "Bearer s3cret"}

    def test_wrong_token_is_rejected_before_running(self, api, cron_secret, make_booking, sent_emails):
        make_booking(payment_due_date=(datetime.utcnow() + timedelta(days=3)).date())
        resp = api.get("/api/cron/payment-reminders", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert sent_emails == []

    def test_unset_secret_is_a_configuration_error(self, api, monkeypatch):
        import core.auth
        monkeypatch.setattr(core.auth, "CRON_SECRET", "")
        assert api.get("/api/cron/reminders", headers={"Authorization": "Bearer "}).status_code == 500

    def test_payment_reminders_report(self, api, cron_secret, make_booking, sent_emails):
        booking = make_booking(payment_due_date=(datetime.utcnow() + timedelta(days=3)).date())
        body = api.get("/api/cron/payment-reminders", headers=cron_secret).json()
        assert body["sweep"] == "payment-reminders"
        assert body["sent"] == 1
        assert body["results"] == [{"booking_id": booking.id, "outcome": "sent"}]
        assert len(sent_emails) == 1

    def test_combined_run(self, api, cron_secret):
        body = api.get("/api/cron/reminders", headers=cron_secret).json()
        assert body["payment_reminders"]["sent"] == 0
        assert body["post_event_reminders"]["sweep"] == "post-event-reminders"


def test_photographer_serialization_hides_account_id(photographer):
    data = photographer.to_dict()
    assert data["payments_connected"] is True
    assert "payments_account_id" not in data
    assert data["username"] == "goldenhour"
