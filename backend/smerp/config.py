# backend/smerp/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/smerp.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///smerp.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Flat tax rule applied per transaction line, in basis points (1000 = 10%)
    TAX_RATE_BPS = int(os.environ.get("TAX_RATE_BPS", "1000"))

    # When False, sales that exceed stock are rejected instead of warned about
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)

    # Unpaid transactions older than this raise an "unpaid" notification
    UNPAID_SETTLEMENT_DAYS = int(os.environ.get("UNPAID_SETTLEMENT_DAYS", "30"))

    SESSION_ABSOLUTE_TIMEOUT_HOURS = int(os.environ.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_HOURS = int(os.environ.get("SESSION_IDLE_TIMEOUT_HOURS", "2"))

    # bcrypt cost factor
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Relative paths resolve against the Flask instance folder
    BACKUP_DIR = os.environ.get("BACKUP_DIR", "backups")

    # Account codes used when a transaction posts its voucher
    POSTING_ACCOUNTS = {
        "cash": "101",
        "receivable": "110",
        "vat_receivable": "120",
        "payable": "210",
        "vat_payable": "220",
        "sales": "401",
        "purchases": "501",
    }
