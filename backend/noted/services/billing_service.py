"""
Noted.AI Backend: Subscription Billing Service
==============================================

What:  Plan changes, Stripe subscription lifecycle, billing history and
       webhook reconciliation.
Why:   Quota limits are a function of the plan, so every plan transition must
       rewrite the four feature limits together with the plan itself.
How:   StripeGateway wraps the (blocking) stripe SDK and runs each call in
       the thread pool; BillingService owns the user-row bookkeeping.

Plans:
    free        no Stripe price          5 / 3 / 2 / 10
    student     STRIPE_STUDENT_PRICE_ID  100 / 50 / 25 / 200
    university  STRIPE_UNIVERSITY_PRICE_ID  unlimited (-1)

Consistency:
    POST /create writes status "active" as soon as Stripe accepts the
    subscription, before the first invoice is paid. Webhooks
    (customer.subscription.updated/deleted) and GET /status reconcile it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from noted.config import settings
from noted.exceptions import BillingError, EmailDeliveryError, ValidationError
from noted.models.user import FEATURES, UNLIMITED, User, as_utc, utcnow
from noted.schemas.subscription import (
    BillingHistoryResponse,
    CreateSubscriptionResponse,
    SubscriptionStatusResponse,
)
from noted.schemas.user import SubscriptionOut, UsageOut
from noted.services.email_service import Mailer

logger = logging.getLogger(__name__)

FREE_PERIOD_DAYS = 30
BILLING_HISTORY_LIMIT = 12


@dataclass(frozen=True)
class Plan:
    name: str
    price_id: Optional[str]
    features: Dict[str, int] = field(default_factory=dict)


PLANS: Dict[str, Plan] = {
    "free": Plan(
        "free",
        None,
        {"aiSummaries": 5, "flashcardGeneration": 3, "assignmentHelp": 2, "citations": 10},
    ),
    "student": Plan(
        "student",
        settings.stripe_student_price_id,
        {"aiSummaries": 100, "flashcardGeneration": 50, "assignmentHelp": 25, "citations": 200},
    ),
    "university": Plan(
        "university",
        settings.stripe_university_price_id,
        {feature: UNLIMITED for feature in FEATURES},
    ),
}


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value else None


def to_plain(value: Any) -> Any:
    """
    Recursively turn stripe SDK objects into plain dicts and lists.

    StripeObject stopped subclassing dict in recent SDK releases, so nothing
    past the gateway may call dict methods on SDK results directly.
    """
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def period_end_of(subscription: Dict[str, Any]) -> Optional[datetime]:
    """
    current_period_end moved from the subscription onto its items in newer
    Stripe API versions; accept either.
    """
    subscription = to_plain(subscription)
    value = subscription.get("current_period_end")
    if value is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            value = items[0].get("current_period_end")
    return _from_timestamp(value)


def client_secret_of(subscription: Dict[str, Any]) -> Optional[str]:
    subscription = to_plain(subscription)
    invoice = subscription.get("latest_invoice") or {}
    if isinstance(invoice, str):
        return None
    intent = invoice.get("payment_intent") or {}
    if isinstance(intent, str):
        return None
    return intent.get("client_secret")


# ══════════════════════════════════════════════════════════════════════════
# Stripe Gateway
# ══════════════════════════════════════════════════════════════════════════

class StripeGateway:
    """
    Thin async facade over the stripe SDK.

    Every SDK error becomes BillingError (→ 502 with a generic message);
    the Stripe message is only logged.
    """

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )
        if self.secret_key:
            stripe.api_key = self.secret_key

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            result = await run_in_threadpool(fn, *args, **kwargs)
        except stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", operation, str(e))
            raise BillingError(context={"operation": operation, "error_type": type(e).__name__})
        return to_plain(result)

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        customer = await self._call(
            "customer.create",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"userId": user_id},
        )
        return customer["id"]

    async def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        await self._call(
            "payment_method.attach",
            stripe.PaymentMethod.attach,
            payment_method_id,
            customer=customer_id,
        )
        await self._call(
            "customer.modify",
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": payment_method_id},
        )

    async def create_subscription(self, customer_id: str, price_id: str) -> Dict[str, Any]:
        return await self._call(
            "subscription.create",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent"],
        )

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._call("subscription.retrieve", stripe.Subscription.retrieve, subscription_id)

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        await self._call(
            "subscription.modify",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=cancel,
        )

    async def list_invoices(self, customer_id: str, limit: int = BILLING_HISTORY_LIMIT) -> List[Dict[str, Any]]:
        invoices = await self._call("invoice.list", stripe.Invoice.list, customer=customer_id, limit=limit)
        return invoices["data"]

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify the Stripe-Signature header against the raw body.

        Raises:
            ValidationError: Missing secret/header, bad payload or bad signature (→ 400).
        """
        if not self.webhook_secret or not signature:
            raise ValidationError(message="Webhook Error: missing signature")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise ValidationError(message=f"Webhook Error: invalid payload ({e})")
        except stripe.SignatureVerificationError:
            raise ValidationError(message="Webhook Error: signature verification failed")
        return to_plain(event)


# ══════════════════════════════════════════════════════════════════════════
# Billing Service
# ══════════════════════════════════════════════════════════════════════════

class BillingService:
    """Subscription bookkeeping on the users table. Stateless; gateway passed per call."""

    @staticmethod
    def _apply_plan(user: User, plan: Plan, status: str = "active") -> None:
        user.plan = plan.name
        user.subscription_status = status
        user.apply_features(plan.features)

    @staticmethod
    def _reset_ai_usage(user: User) -> None:
        for columns in FEATURES.values():
            setattr(user, columns.usage, 0)

    # ── Customer operations ───────────────────────────────────────────────
    async def create_subscription(
        self,
        db: AsyncSession,
        user: User,
        plan_name: str,
        payment_method_id: Optional[str],
        gateway: StripeGateway,
    ) -> CreateSubscriptionResponse:
        plan = PLANS.get(plan_name)
        if plan is None:
            raise ValidationError(message="Invalid plan", field="plan")

        if plan.price_id is None:
            self._apply_plan(user, plan)
            user.current_period_end = utcnow() + timedelta(days=FREE_PERIOD_DAYS)
            await db.flush()
            logger.info("User %s switched to free plan", user.id)
            return CreateSubscriptionResponse(
                subscription_id=None,
                client_secret=None,
                subscription=SubscriptionOut.from_user(user),
            )

        customer_id = user.stripe_customer_id
        if not customer_id:
            customer_id = await gateway.create_customer(user.email, user.full_name, str(user.id))
            user.stripe_customer_id = customer_id

        if payment_method_id:
            await gateway.set_default_payment_method(customer_id, payment_method_id)

        subscription = await gateway.create_subscription(customer_id, plan.price_id)

        self._apply_plan(user, plan)
        user.stripe_subscription_id = subscription["id"]
        user.current_period_end = period_end_of(subscription)
        await db.flush()
        logger.info("User %s subscribed to %s (%s)", user.id, plan.name, subscription["id"])

        return CreateSubscriptionResponse(
            subscription_id=subscription["id"],
            client_secret=client_secret_of(subscription),
            subscription=SubscriptionOut.from_user(user),
        )

    async def status(self, db: AsyncSession, user: User, gateway: StripeGateway) -> SubscriptionStatusResponse:
        if user.stripe_subscription_id:
            try:
                remote = await gateway.retrieve_subscription(user.stripe_subscription_id)
            except BillingError:
                # Local data is still a valid answer
                logger.warning("Serving local subscription data for user %s", user.id)
            else:
                user.subscription_status = remote["status"]
                user.current_period_end = period_end_of(remote) or user.current_period_end
                await db.flush()

        return SubscriptionStatusResponse(
            subscription=SubscriptionOut.from_user(user),
            usage=UsageOut.from_user(user),
        )

    async def cancel(self, db: AsyncSession, user: User, gateway: StripeGateway) -> None:
        if not user.stripe_subscription_id:
            raise ValidationError(message="No active subscription")
        await gateway.set_cancel_at_period_end(user.stripe_subscription_id, True)
        user.subscription_status = "cancelled"
        await db.flush()
        logger.info("Subscription %s set to cancel at period end", user.stripe_subscription_id)

    async def reactivate(self, db: AsyncSession, user: User, gateway: StripeGateway) -> None:
        if not user.stripe_subscription_id:
            raise ValidationError(message="No subscription found")
        await gateway.set_cancel_at_period_end(user.stripe_subscription_id, False)
        user.subscription_status = "active"
        await db.flush()
        logger.info("Subscription %s reactivated", user.stripe_subscription_id)

    async def update_payment_method(self, user: User, payment_method_id: str, gateway: StripeGateway) -> None:
        if not user.stripe_customer_id:
            raise ValidationError(message="No customer found")
        await gateway.set_default_payment_method(user.stripe_customer_id, payment_method_id)

    async def billing_history(self, user: User, gateway: StripeGateway) -> BillingHistoryResponse:
        if not user.stripe_customer_id:
            return BillingHistoryResponse(invoices=[])
        return BillingHistoryResponse(invoices=await gateway.list_invoices(user.stripe_customer_id))

    # ── Webhooks ──────────────────────────────────────────────────────────
    async def handle_event(self, db: AsyncSession, event: Dict[str, Any], mailer: Mailer) -> None:
        event_type = event["type"]
        obj = event["data"]["object"]
        logger.info("Stripe webhook received: %s (%s)", event_type, event.get("id"))

        if event_type == "customer.subscription.updated":
            await self._on_subscription_updated(db, obj)
        elif event_type == "customer.subscription.deleted":
            await self._on_subscription_deleted(db, obj)
        elif event_type == "invoice.payment_failed":
            await self._on_payment_failed(db, obj, mailer)

    async def _user_by(self, db: AsyncSession, column, value: Optional[str]) -> Optional[User]:
        if not value:
            return None
        result = await db.execute(select(User).where(column == value))
        return result.scalars().first()

    async def _on_subscription_updated(self, db: AsyncSession, subscription: Dict[str, Any]) -> None:
        user = await self._user_by(db, User.stripe_subscription_id, subscription.get("id"))
        if user is None:
            logger.warning("subscription.updated for unknown subscription %s", subscription.get("id"))
            return

        user.subscription_status = subscription["status"]
        new_end = period_end_of(subscription)
        old_end = as_utc(user.current_period_end)
        if new_end is not None:
            if old_end is not None and new_end > old_end:
                self._reset_ai_usage(user)
                logger.info("New billing period for user %s; AI usage counters reset", user.id)
            user.current_period_end = new_end
        await db.flush()

    async def _on_subscription_deleted(self, db: AsyncSession, subscription: Dict[str, Any]) -> None:
        user = await self._user_by(db, User.stripe_subscription_id, subscription.get("id"))
        if user is None:
            return

        self._apply_plan(user, PLANS["free"], status="inactive")
        user.stripe_subscription_id = None
        user.stripe_customer_id = None
        user.current_period_end = None
        await db.flush()
        logger.info("Subscription deleted; user %s downgraded to free", user.id)

    async def _on_payment_failed(self, db: AsyncSession, invoice: Dict[str, Any], mailer: Mailer) -> None:
        user = await self._user_by(db, User.stripe_customer_id, invoice.get("customer"))
        if user is None:
            return

        logger.warning("Payment failed for user %s (%s)", user.id, user.email)
        if mailer.configured:
            try:
                await mailer.send_payment_failed_email(user.email, user.first_name)
            except EmailDeliveryError:
                # Acknowledge anyway; a 5xx here would make Stripe redeliver the event
                logger.error("Payment-failed notice to user %s not delivered", user.id)


billing_service = BillingService()
