"""Learner, subscription and payment models."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PAID = "paid"


PAID_STATUSES = frozenset({SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAID.value})


class Language(str, Enum):
    RU = "ru"
    EN = "en"
    PT = "pt"


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    language: Optional[Language] = None


class LessonTokenRequest(BaseModel):
    lessonToken: Optional[str] = None


class SettingsRequest(BaseModel):
    """Settings are addressed either by a lesson link token or a Supabase Auth session."""

    lessonToken: Optional[str] = None
    authAccessToken: Optional[str] = None
    language_preference: Optional[str] = None
    email: Optional[str] = None
    email_notifications_enabled: Optional[bool] = None


class LessonCompletedEvent(BaseModel):
    lessonToken: Optional[str] = None
    dayNumber: Optional[int] = None


class CourseCheckoutRequest(BaseModel):
    userId: Optional[str] = None
    email: Optional[str] = None


class DonationRequest(BaseModel):
    amount: Optional[float] = None
    email: Optional[str] = None
    comment: Optional[str] = None
    currency: str = "eur"


class ContactRequest(BaseModel):
    email: Optional[str] = None
    message: Optional[str] = None
    lang: Optional[str] = None


class PaymentEmailRequest(BaseModel):
    userId: Optional[str] = None
    lessonDay: Optional[int] = None
    token: Optional[str] = None


class TestEmailRequest(BaseModel):
    email: Optional[str] = None


class UserCreate(BaseModel):
    email: Optional[str] = None
    language: Optional[Language] = None
    giveFullAccess: bool = False


class UserRef(BaseModel):
    userId: Optional[str] = None


class AdminUserView(BaseModel):
    """User row as listed in the admin dashboard."""

    id: str
    email: str
    language_preference: Optional[str] = None
    created_at: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription: Optional[dict[str, Any]] = None
    tokens_count: int = Field(0, description="Number of lesson access tokens issued")


class TemplateTestRequest(BaseModel):
    """Admin preview send of an email template."""

    to: Optional[str] = None
    templateKey: Optional[str] = None
    lang: Optional[str] = "ru"
    statsUserEmail: Optional[str] = None
