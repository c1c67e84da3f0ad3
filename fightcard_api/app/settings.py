# fightcard_api/app/settings.py
import os
from pathlib import Path
from dotenv import load_dotenv

# Always load the repo-root .env (…/fightcard/.env), regardless of CWD
ROOT_ENV = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(dotenv_path=ROOT_ENV)


class Settings:
    # ----------------------------------------------------------------------
    # Runtime
    # ----------------------------------------------------------------------
    ENV = os.getenv("ENV", "local")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # ----------------------------------------------------------------------
    # Database
    # ----------------------------------------------------------------------
    DATABASE_URL = os.getenv("DATABASE_URL", "")
    PGHOST = os.getenv("PGHOST", "localhost")
    PGPORT = int(os.getenv("PGPORT", "5432"))
    PGUSER = os.getenv("PGUSER", "fc_user")
    PGPASSWORD = os.getenv("PGPASSWORD", "fc_pass")
    PGDATABASE = os.getenv("PGDATABASE", "fc_db")

    # ----------------------------------------------------------------------
    # Stripe / payments
    # ----------------------------------------------------------------------
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

    # "stripe" in production; "mock" marks checkouts paid immediately (local dev)
    PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "stripe" if STRIPE_SECRET_KEY else "mock")
    OFFER_CURRENCY = os.getenv("OFFER_CURRENCY", "usd")

    # Commission retained on accepted offers (percent of amount_paid)
    PLATFORM_FEE_PERCENT = float(os.getenv("PLATFORM_FEE_PERCENT", "5"))
    # Connected account receiving the commission; empty = funds stay in the platform balance
    PLATFORM_STRIPE_ACCOUNT = os.getenv("PLATFORM_STRIPE_ACCOUNT", "")

    PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "10"))
    PAYMENT_MAX_ATTEMPTS = int(os.getenv("PAYMENT_MAX_ATTEMPTS", "3"))
    PAYMENT_RETRY_BACKOFF_SECONDS = float(os.getenv("PAYMENT_RETRY_BACKOFF_SECONDS", "0.5"))

    FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

    # ----------------------------------------------------------------------
    # Identity (Firebase)
    # ----------------------------------------------------------------------
    # JSON string of a service account; empty = application default credentials
    FIREBASE_SERVICE_ACCOUNT_JSON = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON", "")

    CORS_ORIGINS = [
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]

    # ----------------------------------------------------------------------
    # Worker
    # ----------------------------------------------------------------------
    RECONCILE_INTERVAL_SECONDS = int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300"))


settings = Settings()
