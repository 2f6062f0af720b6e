"""Public site endpoints: contact form, phrase trainer, donations and reminders."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from faloclaro.api.deps import get_db
from faloclaro.models.subscription import ContactRequest, DonationRequest, PaymentEmailRequest
from faloclaro.services import billing, contact, phrases
from faloclaro.services.errors import ConfigurationError, ServiceError
from faloclaro.services.payment_email import send_payment_email
from faloclaro.utils.resend_client import get_resend_client
from faloclaro.utils.supabase_client import Client

router = APIRouter(prefix="/api", tags=["public"])


@router.post("/contact")
def contact_form(body: ContactRequest):
    contact.send_contact_message(body.email, body.message, body.lang)
    return {"ok": True}


@router.get("/phrases")
def phrase_audio(text: Optional[str] = Query(None), db: Client = Depends(get_db)):
    return phrases.find_phrase_audio(db, text)


@router.get("/clusters")
def clusters(db: Client = Depends(get_db)):
    return {"clusters": phrases.list_clusters(db)}


@router.get("/clusters/phrases")
def cluster_phrases(
    cluster_id: Optional[str] = Query(None, alias="clusterId"),
    language: str = Query("ru"),
    db: Client = Depends(get_db),
):
    return {"phrases": phrases.list_phrases(db, cluster_id, language)}


@router.post("/create-checkout-session")
def create_checkout_session(body: DonationRequest):
    """Stripe checkout for a one-off donation."""
    client = billing.get_billing_client()
    return client.create_donation_session(body.amount, body.email, body.comment, body.currency)


@router.post("/send-payment-email")
def payment_email(body: PaymentEmailRequest, db: Client = Depends(get_db)):
    """Payment reminder after the free lessons; sent at most once per learner."""
    if not body.userId:
        raise ServiceError("User ID is required", success=False)
    client = get_resend_client()
    if client is None:
        raise ConfigurationError("Email service not configured", success=False)

    return send_payment_email(db, client, body.userId, body.token)
