from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

ROOT_DIR = Path(__file__).resolve().parents[1]

# Database (SQLite file next to the project by default, Postgres in production)
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'leadoff.sqlite'}")
DB_ECHO = os.getenv("DB_ECHO", "0") == "1"

# Production: always set JWT_SECRET in the environment
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

# Email (Resend). Without a key mails are only logged.
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "LeadOff Health <noreply@leadoffhealth.com>")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")

# Shared secret for the scheduler calling /api/cron/*
CRON_SECRET = os.getenv("CRON_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Booking rules
BOOKING_LEAD_DAYS = int(os.getenv("BOOKING_LEAD_DAYS", "3"))
CANCEL_DEADLINE_HOUR = int(os.getenv("CANCEL_DEADLINE_HOUR", "20"))  # on the day before the slot
SLOT_RETENTION_DAYS = int(os.getenv("SLOT_RETENTION_DAYS", "7"))

# Accounts
INITIAL_PASSWORD_LENGTH = int(os.getenv("INITIAL_PASSWORD_LENGTH", "12"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
DEMO_EMAIL_DOMAIN = os.getenv("DEMO_EMAIL_DOMAIN", "@demo.com")

# Seed administrator (used by `cli init` / `cli create-admin`)
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@leadoff.local")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_NAME = os.getenv("ADMIN_NAME", "Administrator")
