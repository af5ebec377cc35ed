# labinsight/seed_session.py
"""Issue an anonymous session token for local development.

Run with ``python -m labinsight.seed_session``. In production sessions come
from the separate auth service.
"""
import hashlib
import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).resolve().parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

from labinsight.db.session import SessionLocal  # noqa: E402
from labinsight.models import init_db  # noqa: E402
from labinsight.services.session_store import open_session  # noqa: E402


def main():
    ttl_days = int(os.getenv("SESSION_TTL_DAYS", "365") or 365)
    email = (os.getenv("DEMO_USER_EMAIL") or "").strip().lower()
    email_hash = hashlib.sha256(email.encode("utf-8")).hexdigest() if email else None

    init_db()
    with SessionLocal() as db:
        session = open_session(db, ttl_days=ttl_days, email_hash=email_hash)
        print(f"Session token: {session.session_token} (expires {session.expires_at:%Y-%m-%d})")


if __name__ == "__main__":
    main()
