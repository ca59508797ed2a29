# backend/posledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///posledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor; tests lower this to keep hashing fast
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_MINUTES = _env_int("SESSION_IDLE_MINUTES", 120)

    # Sales tax applied when the checkout does not carry an explicit tax amount
    TAX_RATE_BPS = _env_int("TAX_RATE_BPS", 0)

    # Monthly hours paid at the regular rate; anything above is overtime
    OVERTIME_THRESHOLD_HOURS = _env_int("OVERTIME_THRESHOLD_HOURS", 160)
    # Overtime rate used when payroll info has no explicit overtime rate (15000 = 1.5x)
    OVERTIME_MULTIPLIER_BPS = _env_int("OVERTIME_MULTIPLIER_BPS", 15000)

    # Fallback restock alert level for products without a minimum quantity
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    )
