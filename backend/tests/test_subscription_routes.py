"""
Noted.AI Backend: Subscription Route Tests
==========================================

What:  /api/subscriptions/* with a MagicMock(spec=StripeGateway); the
       webhook signature check is also run once against the real stripe SDK.

What we test:
    ✅ Free plan: limits rewritten, Stripe never called
    ✅ Paid plan: customer + subscription created, limits raised
    ✅ Invalid plan → 400; Stripe failure → 502 with a generic message
    ✅ Cancel / reactivate without a subscription → 400
    ✅ Status falls back to local data when Stripe is down
    ✅ Webhooks: period rollover resets usage, deletion downgrades,
       payment failure notifies and still acknowledges
    ✅ Bad or missing signature → 400
    ✅ Real SDK objects (not dicts in current stripe releases) are flattened
       at the gateway: signed webhooks, paid checkout, invoice history
"""

import hashlib
import hmac
import json
import time
from datetime import timedelta
from unittest.mock import patch

import pytest
import stripe

from conftest import auth_headers, reload_user
from noted.dependencies import get_stripe_gateway
from noted.exceptions import BillingError, EmailDeliveryError, ValidationError
from noted.models.user import UNLIMITED, utcnow
from noted.services.billing_service import StripeGateway, client_secret_of, period_end_of, to_plain


def _stripe_subscription(sub_id="sub_123", status="active", period_end=None):
    return {
        "id": sub_id,
        "status": status,
        "current_period_end": period_end or int(time.time()) + 30 * 86400,
        "latest_invoice": {"payment_intent": {"client_secret": "pi_secret_abc"}},
    }


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


class TestCreateSubscription:
    @pytest.mark.asyncio
    async def test_free_plan_never_calls_stripe(self, client, make_user, fake_gateway):
        user = await make_user(plan="student", limit_ai_summaries=100)

        response = await client.post(
            "/api/subscriptions/create", json={"plan": "free"}, headers=auth_headers(user)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["subscriptionId"] is None
        assert body["clientSecret"] is None
        assert body["subscription"]["plan"] == "free"
        assert body["subscription"]["features"]["aiSummaries"] == 5
        assert body["subscription"]["currentPeriodEnd"] is not None
        fake_gateway.create_customer.assert_not_awaited()
        fake_gateway.create_subscription.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_paid_plan(self, client, user, headers, fake_gateway, session_factory):
        fake_gateway.create_customer.return_value = "cus_123"
        fake_gateway.create_subscription.return_value = _stripe_subscription()

        response = await client.post(
            "/api/subscriptions/create",
            json={"plan": "university", "paymentMethodId": "pm_card"},
            headers=headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["subscriptionId"] == "sub_123"
        assert body["clientSecret"] == "pi_secret_abc"
        assert body["subscription"]["features"]["citations"] == UNLIMITED
        fake_gateway.set_default_payment_method.assert_awaited_once_with("cus_123", "pm_card")

        stored = await reload_user(session_factory, user.id)
        assert stored.plan == "university"
        assert stored.stripe_customer_id == "cus_123"
        assert stored.stripe_subscription_id == "sub_123"

    @pytest.mark.asyncio
    async def test_existing_customer_reused(self, client, make_user, fake_gateway):
        user = await make_user(stripe_customer_id="cus_existing")
        fake_gateway.create_subscription.return_value = _stripe_subscription()

        await client.post("/api/subscriptions/create", json={"plan": "student"}, headers=auth_headers(user))

        fake_gateway.create_customer.assert_not_awaited()
        assert fake_gateway.create_subscription.await_args.args[0] == "cus_existing"

    @pytest.mark.asyncio
    async def test_invalid_plan(self, client, headers):
        response = await client.post("/api/subscriptions/create", json={"plan": "platinum"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid plan"

    @pytest.mark.asyncio
    async def test_stripe_failure_is_502_and_plan_unchanged(self, client, user, headers, fake_gateway, session_factory):
        fake_gateway.create_customer.side_effect = BillingError(context={"operation": "customer.create"})

        response = await client.post("/api/subscriptions/create", json={"plan": "student"}, headers=headers)

        assert response.status_code == 502
        assert response.json()["error"] == "Billing provider request failed"
        assert (await reload_user(session_factory, user.id)).plan == "free"


class TestManageSubscription:
    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, client, headers):
        response = await client.post("/api/subscriptions/cancel", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"] == "No active subscription"

    @pytest.mark.asyncio
    async def test_cancel_and_reactivate(self, client, make_user, fake_gateway, session_factory):
        user = await make_user(plan="student", stripe_subscription_id="sub_123")
        headers = auth_headers(user)

        response = await client.post("/api/subscriptions/cancel", headers=headers)
        assert response.json()["message"] == "Subscription will be cancelled at the end of the current period"
        fake_gateway.set_cancel_at_period_end.assert_awaited_with("sub_123", True)
        assert (await reload_user(session_factory, user.id)).subscription_status == "cancelled"

        response = await client.post("/api/subscriptions/reactivate", headers=headers)
        assert response.json()["message"] == "Subscription reactivated successfully"
        fake_gateway.set_cancel_at_period_end.assert_awaited_with("sub_123", False)
        assert (await reload_user(session_factory, user.id)).subscription_status == "active"

    @pytest.mark.asyncio
    async def test_reactivate_without_subscription(self, client, headers):
        response = await client.post("/api/subscriptions/reactivate", headers=headers)
        assert response.json()["error"] == "No subscription found"

    @pytest.mark.asyncio
    async def test_update_payment_method_needs_customer(self, client, headers):
        response = await client.post(
            "/api/subscriptions/update-payment-method", json={"paymentMethodId": "pm_1"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "No customer found"

    @pytest.mark.asyncio
    async def test_status_uses_stripe_when_reachable(self, client, make_user, fake_gateway):
        user = await make_user(plan="student", stripe_subscription_id="sub_123")
        fake_gateway.retrieve_subscription.return_value = _stripe_subscription(status="past_due")

        response = await client.get("/api/subscriptions/status", headers=auth_headers(user))

        assert response.json()["subscription"]["status"] == "past_due"
        assert "totalSummaries" in response.json()["usage"]

    @pytest.mark.asyncio
    async def test_status_falls_back_to_local(self, client, make_user, fake_gateway):
        user = await make_user(plan="student", stripe_subscription_id="sub_123")
        fake_gateway.retrieve_subscription.side_effect = BillingError()

        response = await client.get("/api/subscriptions/status", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["subscription"]["status"] == "active"

    @pytest.mark.asyncio
    async def test_billing_history(self, client, make_user, fake_gateway, headers):
        assert (await client.get("/api/subscriptions/billing-history", headers=headers)).json() == {"invoices": []}

        user = await make_user(stripe_customer_id="cus_1")
        fake_gateway.list_invoices.return_value = [{"id": "in_1", "amount_paid": 999}]

        response = await client.get("/api/subscriptions/billing-history", headers=auth_headers(user))

        assert response.json()["invoices"] == [{"id": "in_1", "amount_paid": 999}]


class TestWebhook:
    async def _post(self, client, fake_gateway, event):
        fake_gateway.construct_event.return_value = event
        return await client.post(
            "/api/subscriptions/webhook",
            content=json.dumps(event).encode(),
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )

    @pytest.mark.asyncio
    async def test_new_period_resets_usage(self, client, make_user, fake_gateway, session_factory):
        old_end = utcnow() + timedelta(days=1)
        user = await make_user(
            plan="student",
            stripe_subscription_id="sub_123",
            current_period_end=old_end,
            usage_total_summaries=40,
            usage_total_citations=7,
            usage_total_notes=12,
        )
        new_end = int((old_end + timedelta(days=30)).timestamp())

        response = await self._post(
            client, fake_gateway, _event("customer.subscription.updated", _stripe_subscription(period_end=new_end))
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        stored = await reload_user(session_factory, user.id)
        assert stored.usage_total_summaries == 0
        assert stored.usage_total_citations == 0
        # Notes are not a metered AI feature
        assert stored.usage_total_notes == 12

    @pytest.mark.asyncio
    async def test_same_period_keeps_usage(self, client, make_user, fake_gateway, session_factory):
        end = utcnow() + timedelta(days=10)
        user = await make_user(
            stripe_subscription_id="sub_123", current_period_end=end, usage_total_summaries=3
        )

        await self._post(
            client, fake_gateway,
            _event("customer.subscription.updated",
                   _stripe_subscription(status="past_due", period_end=int(end.timestamp()))),
        )

        stored = await reload_user(session_factory, user.id)
        assert stored.usage_total_summaries == 3
        assert stored.subscription_status == "past_due"

    @pytest.mark.asyncio
    async def test_deleted_downgrades_to_free(self, client, make_user, fake_gateway, session_factory):
        user = await make_user(
            plan="university", stripe_subscription_id="sub_123", stripe_customer_id="cus_1",
            limit_ai_summaries=UNLIMITED,
        )

        await self._post(client, fake_gateway, _event("customer.subscription.deleted", {"id": "sub_123"}))

        stored = await reload_user(session_factory, user.id)
        assert stored.plan == "free"
        assert stored.subscription_status == "inactive"
        assert stored.limit_ai_summaries == 5
        assert stored.stripe_subscription_id is None
        assert stored.stripe_customer_id is None

    @pytest.mark.asyncio
    async def test_payment_failed_email_failure_still_acknowledged(self, client, make_user, fake_gateway, fake_mailer):
        await make_user(email="payer@example.edu", stripe_customer_id="cus_9")
        fake_mailer.configured = True
        fake_mailer.send_payment_failed_email.side_effect = EmailDeliveryError()

        response = await self._post(
            client, fake_gateway, _event("invoice.payment_failed", {"customer": "cus_9"})
        )

        assert response.status_code == 200
        fake_mailer.send_payment_failed_email.assert_awaited_once_with("payer@example.edu", "Ada")

    @pytest.mark.asyncio
    async def test_unknown_event_ignored(self, client, fake_gateway):
        response = await self._post(client, fake_gateway, _event("charge.refunded", {"id": "ch_1"}))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_bad_signature_is_400(self, client, fake_gateway):
        fake_gateway.construct_event.side_effect = ValidationError(
            message="Webhook Error: signature verification failed"
        )

        response = await client.post("/api/subscriptions/webhook", content=b"{}", headers={"Stripe-Signature": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "Webhook Error: signature verification failed"


class TestConstructEvent:
    SECRET = "whsec_test"

    def _sign(self, payload: bytes, secret: str) -> str:
        timestamp = int(time.time())
        signed = f"{timestamp}.".encode() + payload
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def test_valid_signature(self):
        gateway = StripeGateway(secret_key="", webhook_secret=self.SECRET)
        payload = json.dumps(_event("customer.subscription.deleted", {"id": "sub_1"})).encode()

        event = gateway.construct_event(payload, self._sign(payload, self.SECRET))

        assert event["type"] == "customer.subscription.deleted"

    def test_wrong_secret(self):
        gateway = StripeGateway(secret_key="", webhook_secret=self.SECRET)
        payload = b'{"id": "evt_1"}'

        with pytest.raises(ValidationError, match="signature verification failed"):
            gateway.construct_event(payload, self._sign(payload, "whsec_other"))

    def test_missing_header(self):
        gateway = StripeGateway(secret_key="", webhook_secret=self.SECRET)

        with pytest.raises(ValidationError, match="missing signature"):
            gateway.construct_event(b"{}", None)


def _sign(payload: bytes, secret: str = "whsec_test") -> str:
    timestamp = int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _sdk(cls, values):
    return cls.construct_from(values, "sk_test_123")


class TestStripeObjects:
    """The SDK returns StripeObject instances; only plain dicts leave the gateway."""

    def test_period_end_from_sdk_subscription(self):
        subscription = _sdk(stripe.Subscription, {"id": "sub_1", "object": "subscription", "current_period_end": 1_900_000_000})

        assert int(period_end_of(subscription).timestamp()) == 1_900_000_000

    def test_period_end_from_sdk_subscription_items(self):
        subscription = _sdk(stripe.Subscription, {
            "id": "sub_1",
            "object": "subscription",
            "items": {"object": "list", "data": [{"object": "subscription_item", "current_period_end": 1_900_000_000}]},
        })

        assert int(period_end_of(subscription).timestamp()) == 1_900_000_000

    def test_client_secret_from_sdk_subscription(self):
        subscription = _sdk(stripe.Subscription, {
            "id": "sub_1",
            "object": "subscription",
            "latest_invoice": {
                "object": "invoice",
                "payment_intent": {"object": "payment_intent", "client_secret": "pi_secret_sdk"},
            },
        })

        assert client_secret_of(subscription) == "pi_secret_sdk"

    def test_to_plain_nested(self):
        invoices = _sdk(stripe.ListObject, {
            "object": "list",
            "data": [{"id": "in_1", "object": "invoice", "amount_paid": 999}],
        })

        plain = to_plain(invoices)

        assert type(plain) is dict
        assert type(plain["data"][0]) is dict
        assert plain["data"][0]["amount_paid"] == 999


class TestRealGateway:
    @pytest.fixture
    def gateway(self, app):
        gateway = StripeGateway(secret_key="", webhook_secret="whsec_test")
        app.dependency_overrides[get_stripe_gateway] = lambda: gateway
        return gateway

    @pytest.mark.asyncio
    async def test_signed_webhook_updates_subscription(self, client, gateway, make_user, session_factory):
        user = await make_user(stripe_subscription_id="sub_real", subscription_status="active")
        payload = json.dumps({
            "id": "evt_real",
            "object": "event",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_real", "object": "subscription", "status": "past_due",
                                "current_period_end": 1_900_000_000}},
        }).encode()

        response = await client.post(
            "/api/subscriptions/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
        )

        assert response.status_code == 200
        stored = await reload_user(session_factory, user.id)
        assert stored.subscription_status == "past_due"
        assert stored.stripe_subscription_id == "sub_real"

    @pytest.mark.asyncio
    async def test_paid_checkout_with_sdk_objects(self, client, gateway, user, headers, session_factory):
        customer = _sdk(stripe.Customer, {"id": "cus_sdk", "object": "customer"})
        subscription = _sdk(stripe.Subscription, {
            "id": "sub_sdk",
            "object": "subscription",
            "status": "incomplete",
            "current_period_end": 1_900_000_000,
            "latest_invoice": {
                "object": "invoice",
                "payment_intent": {"object": "payment_intent", "client_secret": "pi_secret_sdk"},
            },
        })

        with patch.object(stripe.Customer, "create", return_value=customer), \
             patch.object(stripe.Subscription, "create", return_value=subscription):
            response = await client.post("/api/subscriptions/create", json={"plan": "student"}, headers=headers)

        assert response.status_code == 200
        assert response.json()["clientSecret"] == "pi_secret_sdk"
        stored = await reload_user(session_factory, user.id)
        assert stored.stripe_customer_id == "cus_sdk"
        assert stored.stripe_subscription_id == "sub_sdk"

    @pytest.mark.asyncio
    async def test_billing_history_with_sdk_list(self, client, gateway, make_user):
        user = await make_user(stripe_customer_id="cus_sdk")
        invoices = _sdk(stripe.ListObject, {
            "object": "list",
            "data": [{"id": "in_1", "object": "invoice", "amount_paid": 999}],
        })

        with patch.object(stripe.Invoice, "list", return_value=invoices):
            response = await client.get("/api/subscriptions/billing-history", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json()["invoices"][0]["id"] == "in_1"
        assert response.json()["invoices"][0]["amount_paid"] == 999
