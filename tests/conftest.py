"""Shared pytest fixtures for specsync tests."""

from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from specsync.config import Config
from specsync.core.auth import AuthSessionManager, TokenVerifier
from specsync.errors import RemoteFetchError
from specsync.settings_store import MemorySettingsStore
from specsync.sync.backup import BackupRetention
from specsync.sync.engine import SyncEngine
from specsync.sync.local_store import LocalDocumentStore
from specsync.sync.models import DocumentKey, DocumentPayload, RemoteSyncState

load_dotenv()

SPECS_DIR = ".kiro/specs/ai-project-manager"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a running dashboard",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a running dashboard"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


class FakeDocumentClient:
    """In-memory stand-in for DocumentClient.

    ``documents`` is the remote set.  ``put_failures`` maps a key to the
    exception its PUT raises.  Every PUT is recorded in ``puts``.
    """

    def __init__(self, documents=None, auth=None):
        self.documents: dict[DocumentKey, str] = dict(documents or {})
        self.put_failures: dict[DocumentKey, Exception] = {}
        self.puts: list[DocumentKey] = []
        self.list_calls = 0
        self.has_changes = False
        self.probe_error: Exception | None = None
        self.list_error: Exception | None = None
        self.progress_posts = []
        self.auth = auth or MagicMock(
            spec=AuthSessionManager, **{"current_session.return_value": None}
        )

    def list_documents(self, project_id):
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return {
            key: DocumentPayload(content=content)
            for key, content in self.documents.items()
            if content
        }

    def put_document(self, project_id, key, content, last_known_timestamp=None):
        self.puts.append(key)
        if key in self.put_failures:
            raise self.put_failures[key]
        self.documents[key] = content

    def get_sync_state(self, project_id):
        if self.probe_error is not None:
            raise self.probe_error
        return RemoteSyncState(has_changes=self.has_changes)

    def post_progress(self, project_id, progress):
        self.progress_posts.append(progress)


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance for testing."""
    return Config(
        dashboard_url="https://dashboard.example.com",
        auth_token=None,
        project_root=str(tmp_path),
        insecure=False,
    )


@pytest.fixture
def settings_store():
    return MemorySettingsStore(
        {
            "authToken": "tok-123",
            "userId": "u-1",
            "userEmail": "ada@example.com",
            "userName": "Ada",
        }
    )


@pytest.fixture
def mock_verifier():
    verifier = MagicMock(spec=TokenVerifier)
    verifier.verify.return_value = {
        "userId": "u-1",
        "email": "ada@example.com",
        "name": "Ada",
    }
    return verifier


@pytest.fixture
def auth_manager(settings_store, mock_verifier):
    return AuthSessionManager(settings_store, mock_verifier)


@pytest.fixture
def project_root(tmp_path):
    """A project directory with an empty specs directory."""
    (tmp_path / SPECS_DIR).mkdir(parents=True)
    return tmp_path


@pytest.fixture
def specs_path(project_root):
    return project_root / SPECS_DIR


@pytest.fixture
def fake_client():
    return FakeDocumentClient()


@pytest.fixture
def fake_client_cls():
    return FakeDocumentClient


@pytest.fixture
def make_engine(fake_client):
    """Build a SyncEngine on the project specs directory."""

    def _make(client=None, **kwargs):
        kwargs.setdefault("store", LocalDocumentStore(SPECS_DIR))
        return SyncEngine(client or fake_client, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine(backups=BackupRetention(max_backups=5))


@pytest.fixture
def remote_error():
    return RemoteFetchError("Failed to upload design: 500 Internal Server Error", status_code=500)


@pytest.fixture
def server_context(mock_config, auth_manager, engine, project_root):
    """ServerContext wired to the fake client, with a fake watchdog observer.

    The project's ``config.json`` records ``proj-1``.
    """
    from specsync.config_schema import UnifiedConfig
    from specsync.mcp.lifespan import ServerContext
    from specsync.sync.models import ProjectConfig
    from specsync.sync.scheduler import AdaptiveRefreshScheduler
    from specsync.sync.watcher import FileWatcher

    engine.store.write_project_config(
        engine.store.specs_path(project_root), ProjectConfig(project_id="proj-1")
    )
    ctx = ServerContext(
        config=mock_config,
        unified=UnifiedConfig(),
        auth=auth_manager,
        client=engine.client,
        engine=engine,
        watcher=FileWatcher(engine, debounce_seconds=0.01, observer_factory=MagicMock),
        scheduler=None,
    )
    ctx.scheduler = AdaptiveRefreshScheduler(ctx.refresh)
    return ctx
