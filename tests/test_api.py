import re
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from accounts import ACCOUNTS
from registrations import REGISTRATIONS
from verification import VERIFICATION_CODES

ADMIN_HEADERS = {"X-API-Key": "admin-secret"}


@pytest.fixture
def registration(app_store, make_registration):
    def seed(registration_id="R1", payment_status="pending_bank_transfer", doc_id="doc-1"):
        app_store.set(REGISTRATIONS, doc_id, make_registration(registration_id, payment_status))
        return doc_id

    return seed


class TestRegistrationRoutes:
    def test_status_update(self, client, app_store, registration):
        doc_id = registration()
        response = client.post("/rendezvous-registrations/status", json={"registrationId": "R1", "status": "paid"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Status updated successfully"}
        stored = app_store.get(REGISTRATIONS, doc_id)
        assert stored.get("paymentStatus") == "paid"
        assert stored.get("status") == "confirmed"

    def test_status_update_rejects_unknown_status(self, client, registration):
        registration()
        response = client.post("/rendezvous-registrations/status", json={"registrationId": "R1", "status": "refunded"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid status"}

    def test_status_update_unknown_registration(self, client):
        response = client.post("/rendezvous-registrations/status", json={"registrationId": "nope", "status": "paid"})
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_missing_field_is_a_bad_request(self, client):
        response = client.post("/rendezvous-registrations/status", json={"status": "paid"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "registrationId" in body["error"]

    def test_delete_requires_phrase(self, client, app_store, registration):
        doc_id = registration()
        response = client.post(
            "/rendezvous-registrations/delete",
            json={"registrationId": "R1", "confirmationPhrase": "delete"},
        )
        assert response.status_code == 403
        assert response.json()["success"] is False
        assert app_store.get(REGISTRATIONS, doc_id) is not None

    def test_delete(self, client, app_store, registration):
        doc_id = registration()
        response = client.post(
            "/rendezvous-registrations/delete",
            json={"registrationId": "R1", "confirmationPhrase": "DELETE", "invoiceNumber": "RDV-2026-R1"},
        )
        assert response.status_code == 200
        assert response.json()["details"]["company"] == "Acme MGA"
        assert app_store.get(REGISTRATIONS, doc_id) is None

    def test_create_and_list(self, client):
        response = client.post(
            "/rendezvous-registrations",
            json={
                "billingInfo": {"company": "Beta Carrier", "billingEmail": "ap@beta-carrier.com", "country": "FR"},
                "attendees": [{"firstName": "Grace", "lastName": "Hopper", "email": "grace@beta-carrier.com"}],
                "totalPrice": 800,
            },
        )
        assert response.status_code == 200
        registration_id = response.json()["registrationId"]

        listed = client.get("/rendezvous-registrations").json()["registrations"]
        assert [r["registrationId"] for r in listed] == [registration_id]

    def test_regenerate_invoice(self, client, registration):
        registration(payment_status="paid")
        response = client.post("/rendezvous-registrations/R1/invoice")
        assert response.status_code == 200
        assert response.json()["invoiceNumber"] == "RDV-2026-R1"


class TestCheckInRoutes:
    def test_pending_payment_is_a_conflict(self, client, registration):
        registration()
        response = client.post("/event/checkin", json={"registrationId": "R1"})
        assert response.status_code == 409
        assert response.json() == {"success": False, "error": "Payment not confirmed for this registration"}

    def test_check_in_twice(self, client, registration):
        registration(payment_status="paid")
        first = client.post("/event/checkin", json={"registrationId": "R1"}).json()
        second = client.post("/event/checkin", json={"registrationId": "R1"}).json()

        assert first["success"] is True
        assert first["alreadyCheckedIn"] is False
        assert second["alreadyCheckedIn"] is True
        assert second["attendee"] == first["attendee"]

    def test_stats_attendees_and_ticket(self, client, registration):
        registration(payment_status="paid")
        client.post("/event/checkin", json={"registrationId": "R1"})

        stats = client.get("/event/stats").json()
        assert stats["checkedIn"] == 2
        assert stats["revenue"] == 1000
        assert "byCountry" in client.get("/event/stats", params={"detailed": "true"}).json()

        assert len(client.get("/event/attendees").json()) == 2
        assert client.get("/event/ticket", params={"email": "alan@example.com"}).json()["attendeeName"] == "Alan Turing"
        assert client.get("/event/ticket", params={"email": "nobody@example.com"}).status_code == 404


class TestEventAppRoutes:
    def test_task_lifecycle(self, client):
        created = client.post("/event/tasks", json={"title": "Badges", "priority": "high"}).json()
        task_id = created["id"]
        assert created["status"] == "todo"

        assert client.patch("/event/tasks", json={"id": task_id, "status": "done"}).status_code == 200
        tasks = client.get("/event/tasks").json()
        assert tasks[0]["status"] == "done"
        assert tasks[0]["priority"] == "high"

        assert client.request("DELETE", "/event/tasks", json={"id": task_id}).status_code == 200
        assert client.get("/event/tasks").json() == []
        assert client.request("DELETE", "/event/tasks", json={"id": task_id}).status_code == 404

    def test_task_rejects_unknown_priority(self, client):
        assert client.post("/event/tasks", json={"title": "Badges", "priority": "urgent"}).status_code == 400

    def test_broadcast(self, client):
        response = client.post("/event/broadcast", json={"title": "Lunch", "body": "Served in hall B"})
        assert response.status_code == 200
        notifications = client.get("/event/notifications").json()
        assert notifications[0]["id"] == response.json()["id"]
        assert notifications[0]["title"] == "Lunch"


class TestFinanceRoutes:
    def test_membership_invoice_scenario(self, client):
        response = client.post(
            "/finance/invoices/paid",
            json={
                "transactionId": "pi_900",
                "source": "stripe",
                "organizationName": "Acme MGA",
                "lineItems": [{"description": "Membership", "quantity": 1, "unitPrice": 900}],
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["totalAmount"] == 900
        assert re.fullmatch(r"FASE-\d{5}", body["invoiceNumber"])

        activities = client.get("/finance/activities", params={"transactionId": "pi_900", "source": "stripe"}).json()
        assert activities["activities"][0]["metadata"]["invoiceId"] == body["invoiceId"]

        url = urlparse(body["pdfUrl"])
        download = client.get(f"{url.path}?{url.query}")
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")

    def test_download_requires_token(self, client):
        assert client.get("/files/invoices/paid/FASE-00000.pdf", params={"token": "bogus"}).status_code == 401

    def test_empty_line_items_rejected(self, client):
        response = client.post(
            "/finance/invoices/paid",
            json={"transactionId": "t", "source": "wise", "organizationName": "Acme", "lineItems": []},
        )
        assert response.status_code == 400

    def test_manual_activity(self, client):
        response = client.post(
            "/finance/activities",
            json={"transactionId": "t1", "source": "bank_transfer", "type": "note", "title": "Called customer"},
        )
        assert response.status_code == 200
        activities = client.get("/finance/activities", params={"transactionId": "t1", "source": "bank_transfer"}).json()
        assert activities["activities"][0]["title"] == "Called customer"
        assert activities["activities"][0]["source"] == "bank_transfer"


class TestVerificationRoutes:
    def test_send_and_verify(self, client, app_store, mailer):
        assert client.post("/auth/send-verification", json={"email": "ada@example.com"}).status_code == 200
        code = app_store.get(VERIFICATION_CODES, "ada@example.com").get("code")
        assert code in mailer.sent[0]["body"]

        response = client.post("/auth/verify-code", json={"email": "ada@example.com", "code": code})
        assert response.json() == {"success": True, "verified": True}

        again = client.post("/auth/verify-code", json={"email": "ada@example.com", "code": code})
        assert again.status_code == 400

    def test_malformed_code(self, client):
        assert client.post("/auth/verify-code", json={"email": "ada@example.com", "code": "12ab"}).status_code == 400

    def test_verify_user_email(self, client, app_store):
        app_store.set(ACCOUNTS, "u1", {"email": "ada@example.com"})
        client.post("/auth/send-verification", json={"email": "ada@example.com"})
        code = app_store.get(VERIFICATION_CODES, "ada@example.com").get("code")

        response = client.post("/auth/verify-user-email", json={"uid": "u1", "code": code})
        assert response.status_code == 200
        assert app_store.get(ACCOUNTS, "u1").get("emailVerified") is True


class TestAdminRoutes:
    def test_requires_api_key(self, client):
        assert client.get("/firestore/collections").status_code == 401
        assert client.get("/firestore/collections", headers={"X-API-Key": "wrong"}).status_code == 401

    def test_lists_collections(self, client, app_store):
        app_store.set(ACCOUNTS, "a1", {"email": "a@mga.com"})
        app_store.add(f"{ACCOUNTS}/a1/activities", {"type": "note"})

        root = client.get("/firestore/collections", headers=ADMIN_HEADERS).json()
        assert root["collections"] == ["accounts"]
        assert root["parentPath"] == "(root)"

        nested = client.get("/firestore/collections", headers=ADMIN_HEADERS, params={"parentPath": "accounts/a1"}).json()
        assert nested["collections"] == ["activities"]

    def test_disabled_without_configured_key(self, config, mailer, gateway):
        from dataclasses import replace

        from main import create_app

        app = create_app(replace(config, admin_api_key=None), mailer=mailer, gateway=gateway)
        with TestClient(app) as client:
            assert client.get("/firestore/collections", headers=ADMIN_HEADERS).status_code == 401


class TestAccountAndStripeRoutes:
    def test_account_filter(self, client):
        client.post("/accounts", json={"email": "a@mga.com", "organizationName": "A MGA"})
        client.post("/accounts", json={"email": "b@carrier.com", "organizationName": "B Re", "organizationType": "carrier"})

        everyone = client.post("/accounts/filter", json={}).json()["accounts"]
        assert len(everyone) == 2
        carriers = client.post("/accounts/filter", json={"organizationTypes": ["carrier"]}).json()["accounts"]
        assert [a["email"] for a in carriers] == ["b@carrier.com"]

    def test_checkout_session(self, client, gateway):
        response = client.post(
            "/stripe/checkout",
            json={"userId": "u1", "amountCents": 90000, "description": "Membership"},
        )
        assert response.json() == {"success": True, "checkoutUrl": "https://checkout.stripe.test/session"}
        assert gateway.checkouts[0]["success_url"] == "http://testserver/payment-success"

    def test_webhook_marks_account_paid(self, client, app_store, gateway):
        app_store.set(ACCOUNTS, "u1", {"email": "u@mga.com", "status": "pending"})
        gateway.next_event = {
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "metadata": {"user_id": "u1"}}},
        }

        response = client.post("/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})

        assert response.json() == {"received": True}
        account = client.get("/accounts/u1").json()["account"]
        assert account["status"] == "approved"
        assert account["paymentId"] == "cs_1"

    def test_webhook_subscription_invoice(self, client, app_store, gateway):
        app_store.set(ACCOUNTS, "u2", {"email": "u2@mga.com", "status": "pending"})
        gateway.subscriptions["sub_1"] = {"user_id": "u2"}
        gateway.next_event = {
            "type": "invoice.payment_succeeded",
            "data": {"object": {"id": "in_1", "subscription": "sub_1"}},
        }
        client.post("/stripe/webhook", content=b"{}")
        assert app_store.get(ACCOUNTS, "u2").get("paymentStatus") == "paid"

    def test_unexpected_failure_is_a_json_500(self, app, gateway):
        gateway.construct_event = lambda payload, signature: None
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.post("/stripe/webhook", content=b"{}")
        assert response.status_code == 500
        assert response.json()["success"] is False


def test_verify_code_without_stored_expiry_is_a_bad_request(client, app_store):
    app_store.set(VERIFICATION_CODES, "ada@example.com", {"email": "ada@example.com", "code": "123456", "used": False})
    response = client.post("/auth/verify-code", json={"email": "ada@example.com", "code": "123456"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Verification code expired"}


def test_stats_with_mixed_created_at_types(client, app_store, make_registration):
    app_store.set(REGISTRATIONS, "a", make_registration("A", "paid"))
    app_store.set(REGISTRATIONS, "b", make_registration("B", "paid", createdAt=1714557600000))

    response = client.get("/event/stats", params={"detailed": "true"})

    assert response.status_code == 200
    assert response.json()["totalRegistrations"] == 2
    assert len(response.json()["recentRegistrations"]) == 2
