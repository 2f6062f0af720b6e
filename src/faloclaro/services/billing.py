"""Stripe checkout for the course and for donations."""

import logging
import os
from typing import Optional

import stripe

from faloclaro.constants import (
    APP_URL,
    PAID_ACCESS_DAYS,
    STRIPE_COURSE_PRICE_ID,
    STRIPE_COURSE_PRODUCT_ID,
    STRIPE_WEBHOOK_SECRET,
)
from faloclaro.services.errors import ConfigurationError, ServiceError
from faloclaro.utils.supabase_client import Client, add_days, fetch_one, now_iso

logger = logging.getLogger(__name__)

COURSE_PRODUCT_NAME = "FaloClaro 60-Day Portuguese Course"
COURSE_PRICE_CENTS = 2000
COURSE_METADATA = {"course_type": "subscription", "duration_days": "60"}
DONATION_PRODUCT_NAME = "FaloClaro Donation"


class BillingClient:
    """Thin wrapper over the Stripe SDK that carries the secret key per call."""

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        price_id: str | None = None,
        product_id: str | None = None,
    ):
        """Initialize Stripe billing.

        Args:
            api_key: Stripe secret key (or STRIPE_SECRET_KEY env var)
            webhook_secret: Endpoint signing secret (or STRIPE_WEBHOOK_SECRET env var)
            price_id: Course price (or STRIPE_COURSE_PRICE_ID env var)
            product_id: Course product (or STRIPE_COURSE_PRODUCT_ID env var)
        """
        self.api_key = api_key or os.getenv("STRIPE_SECRET_KEY")
        if not self.api_key:
            raise ValueError(
                "Stripe credentials required: STRIPE_SECRET_KEY env var or constructor param"
            )
        self.webhook_secret = webhook_secret or STRIPE_WEBHOOK_SECRET
        self.price_id = price_id or STRIPE_COURSE_PRICE_ID
        self.product_id = product_id or STRIPE_COURSE_PRODUCT_ID

    def create_donation_session(
        self,
        amount: Optional[float],
        email: Optional[str] = None,
        comment: Optional[str] = None,
        currency: str = "eur",
    ) -> dict:
        """One-off donation checkout.

        Raises:
            ServiceError: When ``amount`` is missing or not positive
        """
        if not amount or amount <= 0:
            raise ServiceError("Invalid amount")

        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": (currency or "eur").lower(),
                        "product_data": {
                            "name": DONATION_PRODUCT_NAME,
                            "description": comment or "Thank you for supporting FaloClaro!",
                        },
                        "unit_amount": round(amount * 100),
                    },
                    "quantity": 1,
                }
            ],
            mode="payment",
            customer_email=email or None,
            success_url=f"{APP_URL}/methodology?payment=success",
            cancel_url=f"{APP_URL}/methodology?payment=cancelled",
            metadata={"comment": comment or "", "email": email or ""},
        )
        logger.info(f"✓ Donation session {session.id} created ({amount} {currency})")
        return {"sessionId": session.id, "url": session.url}

    def create_course_session(self, db: Client, user_id: Optional[str], email: Optional[str]) -> dict:
        """Course checkout, reusing the learner's Stripe customer when one exists.

        Raises:
            ServiceError: Missing user id or email
            ConfigurationError: STRIPE_COURSE_PRICE_ID is not set
        """
        if not user_id or not email:
            raise ServiceError("User ID and email are required")
        if not self.price_id:
            raise ConfigurationError(
                "Course price not configured. Please create Stripe product first."
            )

        subscription = fetch_one(
            db.table("subscriptions")
            .select("stripe_customer_id")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
        )
        customer_id = (subscription or {}).get("stripe_customer_id")
        if not customer_id:
            customer = stripe.Customer.create(
                api_key=self.api_key, email=email, metadata={"user_id": user_id}
            )
            customer_id = customer.id
            db.table("subscriptions").update({"stripe_customer_id": customer_id}).eq(
                "user_id", user_id
            ).execute()

        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            customer=customer_id,
            payment_method_types=["card"],
            line_items=[{"price": self.price_id, "quantity": 1}],
            mode="payment",
            success_url=f"{APP_URL}/pt?payment=success",
            cancel_url=f"{APP_URL}/pt?payment=cancelled",
            metadata={"user_id": user_id, "course_type": "subscription"},
        )
        logger.info(f"✓ Course checkout {session.id} created for {user_id}")
        return {"sessionId": session.id, "url": session.url}

    def create_course_product(self) -> dict:
        product = stripe.Product.create(
            api_key=self.api_key,
            name=COURSE_PRODUCT_NAME,
            description="Complete 60-day Portuguese language course with daily lessons",
            metadata=COURSE_METADATA,
        )
        price = stripe.Price.create(
            api_key=self.api_key,
            product=product.id,
            unit_amount=COURSE_PRICE_CENTS,
            currency="eur",
            metadata=COURSE_METADATA,
        )
        logger.info(f"✓ Created Stripe product {product.id} with price {price.id}")
        return {
            "success": True,
            "product_id": product.id,
            "price_id": price.id,
            "message": "Product and price created successfully",
            "instructions": [
                "Add these to your environment:",
                f"STRIPE_COURSE_PRODUCT_ID={product.id}",
                f"STRIPE_COURSE_PRICE_ID={price.id}",
            ],
        }

    def check_course_product(self) -> dict:
        if not self.product_id:
            return {
                "exists": False,
                "message": "Product ID not configured. Run POST to create product.",
            }
        try:
            product = stripe.Product.retrieve(self.product_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                return {"exists": False, "message": "Product not found in Stripe"}
            raise
        return {
            "exists": True,
            "product_id": product.id,
            "name": product.name,
            "description": product.description,
        }

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify a webhook payload.

        Raises:
            ServiceError: Missing signature/secret or a bad signature
        """
        if not signature or not self.webhook_secret:
            raise ServiceError("Missing signature or webhook secret")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.error(f"✗ Webhook signature verification failed: {e}")
            raise ServiceError("Invalid signature") from e


def get_billing_client() -> BillingClient:
    try:
        return BillingClient()
    except ValueError as e:
        raise ConfigurationError("Stripe secret key not configured") from e


def activate_course(db: Client, user_id: str, checkout_session_id: str) -> None:
    """Mark the learner's subscriptions active for the paid period."""
    db.table("subscriptions").update(
        {
            "status": "active",
            "paid_at": now_iso(),
            "expires_at": add_days(PAID_ACCESS_DAYS),
            "stripe_subscription_id": checkout_session_id,
        }
    ).eq("user_id", user_id).execute()
    logger.info(f"✓ Course activated for {user_id} (session {checkout_session_id})")


def _plain(obj) -> dict:
    """Stripe SDK objects are not dicts; webhook events arrive as ``StripeObject``."""
    if obj is None:
        return {}
    return obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)


def handle_webhook_event(db: Client, event) -> None:
    """Apply a verified Stripe event; only completed checkouts change state."""
    event = _plain(event)
    event_type = event.get("type")
    if event_type == "checkout.session.completed":
        session = _plain(_plain(event.get("data")).get("object"))
        user_id = _plain(session.get("metadata")).get("user_id")
        if user_id:
            activate_course(db, user_id, session.get("id"))
        else:
            logger.info(f"Checkout {session.get('id')} has no user_id (donation)")
    elif event_type == "payment_intent.succeeded":
        logger.debug("payment_intent.succeeded received")
    else:
        logger.info(f"Unhandled event type: {event_type}")
