"""Create the initial admin user for the correspondence tracking backend.

Run: `python -m backend.manage_create_admin --username admin --email admin@example.com --password changeme`
"""

import argparse
import logging
from contextlib import contextmanager

from backend.auth.jwt import get_password_hash
from backend.config import Base, SessionLocal, engine, settings
from backend.constants import ADMIN_ROLE
from backend.core.logging import configure_logging
from backend.models.models import Role, User
from backend.seeds.roles import seed_defaults

logger = logging.getLogger("backend.manage_create_admin")


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create the initial admin user")
    parser.add_argument("--username", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--full-name-ar", default="مدير النظام")
    parser.add_argument("--full-name-en", default="System Administrator")
    return parser


def create_admin(db, username: str, email: str, password: str, full_name_ar: str, full_name_en: str):
    """Return the new admin user, or ``None`` when the username or email is taken."""
    seed_defaults(db)
    admin_role = db.query(Role).filter(Role.name == ADMIN_ROLE).one()

    existing_user = (
        db.query(User)
        .filter(User.deleted_at.is_(None), (User.username == username) | (User.email == email))
        .first()
    )
    if existing_user:
        return None

    user = User(
        username=username,
        email=email,
        full_name_ar=full_name_ar,
        full_name_en=full_name_en,
        hashed_password=get_password_hash(password),
        role_id=admin_role.id,
    )
    db.add(user)
    db.flush()
    return user


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, settings.log_json)
    Base.metadata.create_all(bind=engine)

    with session_scope() as db:
        user = create_admin(db, args.username, args.email, args.password, args.full_name_ar, args.full_name_en)
        if user is None:
            logger.warning("A user with that username or email already exists.")
            return 1
        logger.info("Created admin user %s with id %s", user.username, user.id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
