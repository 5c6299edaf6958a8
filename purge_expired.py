#!/usr/bin/env python3
"""
Reap expired OTP records and sessions.

Expiry is enforced on every read; this only reclaims space. Run it from cron
or a scheduled job against the same DATABASE_URL as the API.
"""
import logging
import sys

from sqlmodel import Session

from directory_auth.config import settings
from directory_auth.database import create_db_and_tables, engine
from directory_auth.exceptions import TransientStoreError
from directory_auth.infrastructure.persistence.sqlalchemy.repositories.otp_repository_sql import SqlOTPRepository
from directory_auth.infrastructure.persistence.sqlalchemy.repositories.session_repository_sql import SqlSessionRepository

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=settings.LOG_FORMAT)
logger = logging.getLogger("purge_expired")


def purge_expired(bind=engine) -> dict:
    """Delete expired rows from both tables; returns the counts."""
    create_db_and_tables(bind)
    with Session(bind) as session:
        otps = SqlOTPRepository(session).purge_expired()
        sessions = SqlSessionRepository(session).purge_expired()
    return {"otp_records": otps, "sessions": sessions}


if __name__ == "__main__":
    try:
        counts = purge_expired()
    except TransientStoreError as e:
        logger.error(f"Purge failed: {e.message}")
        sys.exit(1)
    print(f"Purged {counts['otp_records']} OTP records and {counts['sessions']} sessions")
