import os
from concurrent.futures import wait

os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from config import Settings  # noqa: E402
from main import build_services, create_app  # noqa: E402
from memory_stores import memory_stores  # noqa: E402
from notifications import FakeChatAdapter, FakeEmailAdapter, NotificationDispatcher  # noqa: E402

ADMIN_EMAIL = "admin@abukhadija-pharmacy.com"
ADMIN_WHATSAPP = "962790000000"


class RecordingDispatcher(NotificationDispatcher):
    """Keeps the futures of every dispatch so tests can wait for the sends."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.futures = []
        self.summaries = []

    def notify_new_order(self, summary):
        futures = super().notify_new_order(summary)
        self.summaries.append(summary)
        self.futures.extend(futures)
        return futures

    def wait(self, timeout=5):
        done, not_done = wait(self.futures, timeout=timeout)
        assert not not_done, "notification jobs did not finish in time"
        return [f.result() for f in done]


@pytest.fixture()
def settings():
    return Settings(
        secret_key="test-secret",
        password_hash_rounds=10,
        admin_email=ADMIN_EMAIL,
        admin_whatsapp_number=ADMIN_WHATSAPP,
        environment="test",
    )


@pytest.fixture()
def stores():
    return memory_stores()


@pytest.fixture()
def email_adapter():
    return FakeEmailAdapter()


@pytest.fixture()
def chat_adapter():
    return FakeChatAdapter()


@pytest.fixture()
def notifier(email_adapter, chat_adapter):
    dispatcher = RecordingDispatcher(
        email=email_adapter,
        chat=chat_adapter,
        admin_email=ADMIN_EMAIL,
        admin_chat_recipient=ADMIN_WHATSAPP,
        max_workers=2,
    )
    yield dispatcher
    dispatcher.shutdown(wait=True)


@pytest.fixture()
def services(settings, stores, notifier):
    return build_services(settings, stores=stores, notifier=notifier)


@pytest.fixture()
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture()
def patient(services):
    """A registered patient with a valid session token."""
    account_id = services.accounts.register(
        name="Khadija Haddad",
        email="khadija@example.com",
        phone="+962 79 123 4567",
        password="s3cret-pass",
    )
    token = services.sessions.issue(account_id)
    return {"id": account_id, "email": "khadija@example.com", "password": "s3cret-pass", "token": token}


@pytest.fixture()
def add_drug(services):
    def _add(name="Amoxicillin 500mg", price=4.5, stock=5, **extra):
        return services.catalog.add_product({"name": name, "price": price, "stock": stock, **extra})

    return _add
