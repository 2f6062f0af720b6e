import os
import traceback

from dotenv import load_dotenv

load_dotenv(os.getenv("ENV_FILE"), override=True)

if env_secret := os.getenv("ENV_SECRET"):
    try:
        # Secrets for deployed environments live in AWS Parameter Store as key=value lines
        print(f"Loading environment variables from {env_secret}\n")

        import boto3

        ssm = boto3.client("ssm", region_name=os.getenv("REGION", "eu-west-1"))
        response = ssm.get_parameter(Name=env_secret, WithDecryption=True)
        envs = response["Parameter"]["Value"]
        count = 0
        for line in envs.splitlines():
            if not line.strip() or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            os.environ[key] = value
            count += 1
            is_secret = any(
                marker in key.upper() for marker in ("KEY", "TOKEN", "SECRET", "CRED")
            )
            print(f"    {key}{f'= {value}' if not is_secret else '=*****'}")

        print(f"\nEnvironment variables loaded successfully. Total loaded: {count}")
    except Exception as e:
        print(f"Error loading environment variables from AWS Parameter Store: {e}")
        traceback.print_exc()

# General
PRODUCT = os.getenv("PRODUCT", "faloclaro")
VERSION = os.environ.get("VERSION", "0")
ENV = os.getenv("ENV", "stg")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

APP_URL = (
    os.getenv("APP_URL")
    or os.getenv("NEXT_PUBLIC_APP_URL")
    or "https://www.faloclaro.com"
).rstrip("/")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", APP_URL).split(",")
    if origin.strip()
]

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY") or os.getenv(
    "NEXT_PUBLIC_SUPABASE_ANON_KEY"
)
LESSON_AUDIO_BUCKET = os.getenv("LESSON_AUDIO_BUCKET", "lesson-audio")
FALLBACK_AUDIO_BUCKET = os.getenv("FALLBACK_AUDIO_BUCKET", "audio")

# Email (Resend)
RESEND_FROM_EMAIL = os.getenv("RESEND_FROM_EMAIL", "FaloClaro <noreply@faloclaro.com>")
RESEND_CONTACT_TO = os.getenv("RESEND_CONTACT_TO")
CRON_EMAIL_SECRET = os.getenv("CRON_EMAIL_SECRET")

# Admin API (open when unset)
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Stripe
STRIPE_COURSE_PRODUCT_ID = os.getenv("STRIPE_COURSE_PRODUCT_ID")
STRIPE_COURSE_PRICE_ID = os.getenv("STRIPE_COURSE_PRICE_ID")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Course rules
TRIAL_DAYS = 3
FREE_LESSON_DAYS = 3
COURSE_LENGTH_DAYS = 60
PAID_ACCESS_DAYS = 60
WELCOME_TOKEN_DAYS = 365
LESSON_EMAIL_TOKEN_DAYS = 30
TASKS_PER_LESSON = 5

# LLM
LESSON_GENERATION_MODEL = os.getenv("LESSON_GENERATION_MODEL", "gpt-4o-mini")
