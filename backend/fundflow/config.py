# backend/fundflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fundflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fundflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for every ancestor walk over the unit tree
    MAX_HIERARCHY_DEPTH = int(os.environ.get("MAX_HIERARCHY_DEPTH", "32"))

    # Requests below this amount (won) skip the senior-approver step
    APPROVAL_SENIOR_THRESHOLD = int(os.environ.get("APPROVAL_SENIOR_THRESHOLD", "500000"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Optional callable(outbox_row) that hands notifications to a delivery channel
    NOTIFICATION_DISPATCHER = None


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    # Fast hashing keeps the provisioning tests quick
    BCRYPT_ROUNDS = 4
