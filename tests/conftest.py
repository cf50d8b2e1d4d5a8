"""Shared test fixtures for CertLedger."""

import pytest
from httpx import ASGITransport, AsyncClient

from certledger.common.config import CertLedgerSettings
from certledger.common.database import DatabaseManager
from certledger.issuance.pipeline import BatchIssuancePipeline
from certledger.issuance.store import CertificateStore
from certledger.ledger.account import LedgerAccount
from certledger.ledger.committer import LedgerCommitter
from certledger.ledger.reader import LedgerReader
from certledger.verification.engine import VerificationEngine
from tests.fakes import WALLET, FakeChannel, FakeLedgerNode, FakeSigner

API_KEY = "test-admin-api-key"


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def settings():
    return CertLedgerSettings(
        db_url="sqlite+aiosqlite://",
        api_key=API_KEY,
        wallet_address=WALLET,
        submit_backoff_base=0.0,
    )


@pytest.fixture
def ledger():
    return FakeLedgerNode()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def account(signer):
    return LedgerAccount(WALLET, signer)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def store():
    return CertificateStore()


@pytest.fixture
def committer(settings, ledger, account):
    return LedgerCommitter(settings, ledger, account)


@pytest.fixture
def reader(settings, ledger):
    return LedgerReader(settings, ledger)


@pytest.fixture
def pipeline(settings, db, committer, channel, store):
    return BatchIssuancePipeline(settings, db, committer, channel, store)


@pytest.fixture
def engine(settings, db, reader, store):
    return VerificationEngine(settings, db, reader, store)


@pytest.fixture
def app(monkeypatch, ledger, account, channel):
    """Create a test app with in-memory DB and in-process ledger and channel."""
    monkeypatch.setenv("CERTLEDGER_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("CERTLEDGER_API_KEY", API_KEY)
    monkeypatch.setenv("CERTLEDGER_WALLET_ADDRESS", WALLET)
    monkeypatch.setenv("CERTLEDGER_SUBMIT_BACKOFF_BASE", "0")

    # Clear caches and singletons so new env vars take effect
    from certledger.common.config import get_settings
    get_settings.cache_clear()

    from certledger.deps import override_collaborators, reset_singletons
    reset_singletons()
    override_collaborators(node=ledger, account=account, channel=channel)

    from certledger.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from certledger.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-CertLedger-Api-Key": API_KEY}
