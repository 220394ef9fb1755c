import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from hoa_portal.config import Settings
from hoa_portal.database import build_engine, init_db
from hoa_portal.errors import TransientFailure
from hoa_portal.main import build_services, create_app
from hoa_portal.models.models import AdminUser, User
from hoa_portal.notifications.transport import EmailTransport
from hoa_portal.services.authorization import TrustedHeaderIdentityProvider


class FakeTransport(EmailTransport):
    """Records messages; raises queued failures before succeeding"""

    provider_name = "fake"

    def __init__(self):
        self.calls = []
        self.sent = []
        self.failures = []

    def fail_with(self, *errors):
        self.failures.extend(errors)

    def send(self, message):
        self.calls.append(message)
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append(message)
        return f"msg-{len(self.sent)}"


class FakeSearchClient:
    """In-memory stand-in for the search service"""

    def __init__(self):
        self.stored = []
        self.queries = []
        self.down = False

    def is_configured(self):
        return True

    def store(self, content, tags, metadata):
        if self.down:
            raise TransientFailure("search service unavailable", status_code=503)
        self.stored.append({"content": content, "tags": tags, "metadata": metadata})
        return {"id": f"mem-{len(self.stored)}"}

    def search(self, query, tags):
        self.queries.append((query, tags))
        if self.down:
            raise TransientFailure("search service unavailable", status_code=503)
        return [
            {"metadata": doc["metadata"], "score": 1.0}
            for doc in self.stored
            if query.lower() in doc["content"].lower()
            and all(tag in doc["tags"] for tag in tags)
        ]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'portal.db'}",
        notifications_background=False,
        email_max_attempts=3,
        email_backoff_base_seconds=0.0,
        email_backoff_max_seconds=0.0,
        index_max_attempts=2,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.database_url)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def search_client():
    return FakeSearchClient()


@pytest.fixture
def services(settings, session_factory, transport, search_client):
    services = build_services(
        settings, session_factory, transport=transport, search_client=search_client
    )
    services.indexer._sleep = lambda seconds: None
    return services


@pytest.fixture
def client(settings, session_factory, services):
    return TestClient(create_app(settings, session_factory, services))


def _add_user(db, user_id, email, name, role=None):
    user = User(user_id=user_id, email=email, display_name=name)
    db.add(user)
    if role:
        db.add(AdminUser(user_id=user_id, role=role))
    db.commit()
    return user


@pytest.fixture
def resident(db):
    _add_user(db, "u1", "resident@example.com", "Pat Resident")
    return TrustedHeaderIdentityProvider().resolve(db, "u1")


@pytest.fixture
def other_resident(db):
    _add_user(db, "u2", "neighbor@example.com", "Sam Neighbor")
    return TrustedHeaderIdentityProvider().resolve(db, "u2")


@pytest.fixture
def admin(db):
    _add_user(db, "admin1", "admin@example.com", "Board Admin", role="admin")
    return TrustedHeaderIdentityProvider().resolve(db, "admin1")


@pytest.fixture
def pending(db, services, resident):
    """A fresh pending submission owned by ``resident``"""

    def make(title="Sunset", category="Litchfield", description=None):
        return services.intake.submit(
            db, resident, category, title, description, f"photos/{title.lower()}.jpg"
        )

    return make
