"""
Noted.AI Backend: Subscription Schemas
======================================

Request/response models for /api/subscriptions/*.
"""

from typing import Any, Dict, List, Optional

from noted.schemas.common import CamelModel
from noted.schemas.user import SubscriptionOut, UsageOut


class CreateSubscriptionRequest(CamelModel):
    plan: str
    payment_method_id: Optional[str] = None


class CreateSubscriptionResponse(CamelModel):
    subscription_id: Optional[str] = None
    client_secret: Optional[str] = None
    subscription: SubscriptionOut


class SubscriptionStatusResponse(CamelModel):
    subscription: SubscriptionOut
    usage: UsageOut


class UpdatePaymentMethodRequest(CamelModel):
    payment_method_id: str


class BillingHistoryResponse(CamelModel):
    # Stripe invoice objects, passed through as plain dicts
    invoices: List[Dict[str, Any]]


class WebhookAck(CamelModel):
    received: bool = True
