"""
Noted.AI Backend: Subscription Routes
=====================================

What:  /api/subscriptions/*: plan changes, status, cancel/reactivate,
       payment method, billing history, and the Stripe webhook.

The webhook is unauthenticated; its authenticity comes from the
`Stripe-Signature` header, checked against STRIPE_WEBHOOK_SECRET over the
raw request bytes (re-serialized JSON would not verify).
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from noted.database import get_db_session
from noted.dependencies import get_current_user, get_mailer, get_stripe_gateway
from noted.models.user import User
from noted.schemas.common import ErrorResponse, MessageResponse
from noted.schemas.subscription import (
    BillingHistoryResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    SubscriptionStatusResponse,
    UpdatePaymentMethodRequest,
    WebhookAck,
)
from noted.services.billing_service import StripeGateway, billing_service
from noted.services.email_service import Mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])

BILLING_RESPONSES = {
    400: {"description": "Invalid plan or no subscription", "model": ErrorResponse},
    502: {"description": "Stripe request failed", "model": ErrorResponse},
}


@router.post(
    "/create",
    response_model=CreateSubscriptionResponse,
    responses=BILLING_RESPONSES,
    summary="Switch plan (free) or start a Stripe subscription (paid)",
)
async def create_subscription(
    body: CreateSubscriptionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> CreateSubscriptionResponse:
    return await billing_service.create_subscription(db, user, body.plan, body.payment_method_id, gateway)


@router.get("/status", response_model=SubscriptionStatusResponse, summary="Subscription and usage")
async def subscription_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> SubscriptionStatusResponse:
    return await billing_service.status(db, user, gateway)


@router.post("/cancel", response_model=MessageResponse, responses=BILLING_RESPONSES, summary="Cancel at period end")
async def cancel_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> MessageResponse:
    await billing_service.cancel(db, user, gateway)
    return MessageResponse(message="Subscription will be cancelled at the end of the current period")


@router.post("/reactivate", response_model=MessageResponse, responses=BILLING_RESPONSES, summary="Undo a pending cancel")
async def reactivate_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> MessageResponse:
    await billing_service.reactivate(db, user, gateway)
    return MessageResponse(message="Subscription reactivated successfully")


@router.post(
    "/update-payment-method",
    response_model=MessageResponse,
    responses=BILLING_RESPONSES,
    summary="Replace the default payment method",
)
async def update_payment_method(
    body: UpdatePaymentMethodRequest,
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> MessageResponse:
    await billing_service.update_payment_method(user, body.payment_method_id, gateway)
    return MessageResponse(message="Payment method updated successfully")


@router.get("/billing-history", response_model=BillingHistoryResponse, summary="Recent invoices")
async def billing_history(
    user: User = Depends(get_current_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> BillingHistoryResponse:
    return await billing_service.billing_history(user, gateway)


@router.post(
    "/webhook",
    response_model=WebhookAck,
    responses={400: {"description": "Signature verification failed", "model": ErrorResponse}},
    summary="Stripe event receiver",
)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    mailer: Mailer = Depends(get_mailer),
) -> WebhookAck:
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    await billing_service.handle_event(db, event, mailer)
    return WebhookAck(received=True)
