"""Seed the development database with an onboarded user."""
from __future__ import annotations

import argparse
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.orm import Session

from backend.app.core.db import get_session
from backend.app.models import User


def _get_or_create_user(session: Session, clerk_id: str, email: str, username: str | None) -> User:
    user = session.query(User).filter(User.clerk_id == clerk_id).one_or_none()
    if user is None:
        user = User(clerk_id=clerk_id, email=email, username=username)
        session.add(user)
        session.flush()
    return user


@contextmanager
def _session_scope() -> Iterator[Session]:
    generator = get_session()
    session = next(generator)
    try:
        yield session
    except Exception as exc:
        generator.throw(exc)
        raise
    else:
        next(generator, None)


def main(argv: list[str] | None = None) -> None:
    """Entry point for seeding data."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--clerk-id", default="user_dev")
    parser.add_argument("--email", default="dev@example.com")
    parser.add_argument("--username", default="dev_user")
    args = parser.parse_args(argv)

    with _session_scope() as session:
        user = _get_or_create_user(session, args.clerk_id, args.email, args.username)

        print("Seeded development data:")
        print(f"  User ID: {user.id}")
        print(f"  Clerk ID: {user.clerk_id}")
        print(f"  Username: {user.username}")


if __name__ == "__main__":
    main()
