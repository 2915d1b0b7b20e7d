"""
Shared fixtures: in-memory database seeded with one owner and the reference
data a campaign needs
"""
import pytest

from phishsim.core.config import DispatchConfig, RateLimitConfig, TokenConfig, TrackingConfig
from phishsim.infrastructure.security.token_issuer import SecurityTokenIssuer
from phishsim.infrastructure.storage.database import build_engine, build_session_factory
from phishsim.infrastructure.storage.models import (
    Base,
    EmailAccount,
    EmailType,
    Group,
    Page,
    Target,
    Template,
    User,
)

TEST_SECRET = "test-shared-secret-0123456789abcdef"
TEST_API_KEY = "test-api-key"
WEBHOOK_URL = "https://engine.test/webhook/send"


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = build_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seeded(db):
    """Owner, template, page, sender and two overlapping groups"""
    user = User(username="admin", api_key=TEST_API_KEY)
    other = User(username="someone-else", api_key="other-api-key")
    db.add_all([user, other])
    db.flush()

    db.add(EmailType(value="notification", display_name="Notification", sort_order=1))
    db.flush()

    template = Template(user_id=user.id, name="Password Reset", subject="Reset your password", html="<p>{{.URL}}</p>")
    page = Page(user_id=user.id, name="Login Page", html="<form></form>")
    account = EmailAccount(
        email="it-support@example.com",
        email_type="notification",
        credential_id="cred-123",
        credential_name="Support Mailbox",
    )
    db.add_all([template, page, account])

    staff = Group(user_id=user.id, name="Staff")
    staff.targets = [
        Target(email="alice@example.com", first_name="Alice", last_name="A", position="Engineer"),
        Target(email="bob@example.com", first_name="Bob", last_name="B", position="Sales"),
        Target(email="carol@example.com", first_name="Carol", last_name="C", position="HR"),
    ]
    managers = Group(user_id=user.id, name="Managers")
    managers.targets = [
        Target(email="carol@example.com", first_name="Carol", last_name="C", position="HR"),
        Target(email="dave@example.com", first_name="Dave", last_name="D", position="CTO"),
    ]
    empty = Group(user_id=user.id, name="Empty")
    db.add_all([staff, managers, empty])
    db.commit()

    return {
        "user": user,
        "other_user": other,
        "template": template,
        "page": page,
        "account": account,
        "staff": staff,
        "managers": managers,
        "empty": empty,
    }


@pytest.fixture
def token_config():
    return TokenConfig(secret=TEST_SECRET)


@pytest.fixture
def token_issuer(token_config):
    return SecurityTokenIssuer(token_config)


@pytest.fixture
def rate_limit_config():
    return RateLimitConfig(default_send_interval_seconds=120)


@pytest.fixture
def dispatch_config():
    return DispatchConfig(webhook_url=WEBHOOK_URL, timeout_seconds=30)


@pytest.fixture
def tracking_config():
    return TrackingConfig(public_base_url="https://phish.example.com")
