import os
import sys
import tempfile
from collections.abc import Callable, Generator, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the import-time engine and upload root away from the working tree.
_SCRATCH = Path(tempfile.mkdtemp(prefix="correspondence-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_SCRATCH / 'app.db'}")
os.environ.setdefault("UPLOADS_DIR", str(_SCRATCH / "uploads"))

from backend.config import Base  # noqa: E402
import backend.config as app_config  # noqa: E402
import backend.main as app_main  # noqa: E402
from backend.auth.jwt import build_identity, get_current_user, get_db, get_password_hash  # noqa: E402
from backend.core.rate_limit import limiter  # noqa: E402
# Import the full models module so all tables register with Base metadata.
from backend.models import models as _all_models  # noqa: E402,F401
from backend.models.models import Correspondence, Entity, Permission, Role, User  # noqa: E402
from backend.schemas.schemas import CorrespondenceCreate  # noqa: E402
from backend.services import correspondence as workflow  # noqa: E402
from backend.services.storage import AttachmentStorage, get_attachment_storage  # noqa: E402

app = app_main.app


@pytest.fixture(scope="session", autouse=True)
def _configure_global_test_db(tmp_path_factory):
    """Configure the app-wide SessionLocal/engine so TestClient uses a DB with all tables."""
    db_dir = tmp_path_factory.mktemp("globaldb")
    db_path = db_dir / "app.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    app_config.SessionLocal = SessionLocal
    app_config.engine = engine
    app_main.SessionLocal = SessionLocal
    app_main.engine = engine
    yield
    engine.dispose()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def db_session(tmp_path) -> Generator[Session, None, None]:
    """Provide a fresh SQLite database for each test."""
    db_path = tmp_path / "test.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def storage(tmp_path) -> AttachmentStorage:
    attachment_storage = AttachmentStorage(tmp_path / "uploads", max_size=1024)
    attachment_storage.ensure_directories()
    return attachment_storage


@pytest.fixture
def create_role(db_session: Session) -> Callable[..., Role]:
    def _create(name: str, permissions: Iterable[str] = ()) -> Role:
        role = db_session.query(Role).filter(Role.name == name).first()
        if not role:
            role = Role(name=name)
            db_session.add(role)
        for permission_name in permissions:
            permission = db_session.query(Permission).filter(Permission.name == permission_name).first()
            if not permission:
                resource, action = permission_name.split(":", 1)
                permission = Permission(name=permission_name, resource=resource, action=action)
                db_session.add(permission)
            if permission not in role.permissions:
                role.permissions.append(permission)
        db_session.commit()
        return role

    return _create


@pytest.fixture
def create_user(db_session: Session, create_role: Callable[..., Role]) -> Callable[..., User]:
    counter = {"value": 0}

    def _create(
        username: Optional[str] = None,
        role_name: str = "admin",
        permissions: Iterable[str] = (),
        password: str = "changeme",
        is_active: bool = True,
    ) -> User:
        counter["value"] += 1
        username = username or f"user{counter['value']}"
        role = create_role(role_name, permissions)
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=get_password_hash(password),
            full_name_ar=f"مستخدم {counter['value']}",
            full_name_en=f"User {counter['value']}",
            role_id=role.id,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _create


@pytest.fixture
def create_entity(db_session: Session) -> Callable[..., Entity]:
    counter = {"value": 0}

    def _create(name_en: Optional[str] = None, type: str = "government", name_ar: Optional[str] = None) -> Entity:
        counter["value"] += 1
        entity = Entity(
            name_ar=name_ar or f"جهة {counter['value']}",
            name_en=name_en or f"Entity {counter['value']}",
            type=type,
        )
        db_session.add(entity)
        db_session.commit()
        return entity

    return _create


@pytest.fixture
def create_correspondence(db_session: Session, create_entity) -> Callable[..., Correspondence]:
    def _create(actor: User, type: str = "incoming", subject: str = "Budget request", **overrides) -> Correspondence:
        sender = overrides.pop("sender", None) or create_entity()
        receiver = overrides.pop("receiver", None) or create_entity()
        payload = CorrespondenceCreate(
            type=type,
            subject=subject,
            description=overrides.pop("description", "Details of the request"),
            sender_entity_id=sender.id,
            receiver_entity_id=receiver.id,
            correspondence_date=overrides.pop("correspondence_date", datetime(2024, 3, 10, 9, 0, tzinfo=timezone.utc)),
            **overrides,
        )
        return workflow.create_correspondence(db_session, payload, actor.id)

    return _create


@pytest.fixture
def api_client(db_session: Session, storage: AttachmentStorage) -> Generator[Callable[..., TestClient], None, None]:
    """Build a TestClient bound to the per-test database, optionally signed in as ``user``."""
    clients = []

    def _build(user: Optional[User] = None) -> TestClient:
        def _override_get_db():
            yield db_session

        app.dependency_overrides[get_db] = _override_get_db
        app.dependency_overrides[get_attachment_storage] = lambda: storage
        if user is not None:
            identity = build_identity(user)
            app.dependency_overrides[get_current_user] = lambda: identity
        else:
            app.dependency_overrides.pop(get_current_user, None)
        client = TestClient(app)
        clients.append(client)
        return client

    yield _build
    for client in clients:
        client.close()
    app.dependency_overrides.clear()
