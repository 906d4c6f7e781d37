"""
Global pytest configuration and fixtures for NearHelp testing.
"""
import os
import sys
from pathlib import Path

import pytest

# Allow running the suite from a checkout without installing the package
SRC_DIR = Path(__file__).parent.parent / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from nearhelp.core.config import ConfigurationManager  # noqa: E402
from nearhelp.core.database import DatabaseManager  # noqa: E402

from tests.base import build_services, insert_user  # noqa: E402
from tests.mocks.email_mocks import MockEmailNotifier  # noqa: E402


ADMIN_EMAIL = "admin@nearhelp.test"


@pytest.fixture
def db(tmp_path):
    """Create a test SQLite database."""
    manager = DatabaseManager(str(tmp_path / "nearhelp.db"))
    yield manager
    manager.close()


@pytest.fixture
def email():
    return MockEmailNotifier()


@pytest.fixture
def services(db, email):
    """Incident coordination services wired to the test database."""
    return build_services(db, email=email)


@pytest.fixture
def make_user(services):
    """Factory inserting users and returning their identities."""
    def _make_user(name="User", **kwargs):
        return insert_user(services.users, name, **kwargs)
    return _make_user


@pytest.fixture
def config_manager(tmp_path, monkeypatch):
    """Configuration isolated from the host environment and checkout."""
    for name in list(os.environ):
        if name.startswith("NEARHELP_"):
            monkeypatch.delenv(name, raising=False)

    monkeypatch.setenv("NEARHELP_DB_PATH", str(tmp_path / "data" / "nearhelp.db"))

    manager = ConfigurationManager(config_dir=str(tmp_path / "config"))
    manager.load_config()
    manager.set('logging.file', str(tmp_path / "logs" / "nearhelp.log"))
    manager.set('logging.console', False)
    manager.set('auth.jwt_secret', "test-secret")
    manager.set('auth.bcrypt_rounds', 4)
    manager.set('auth.admin_emails', [ADMIN_EMAIL])
    manager.set('email.enabled', False)
    return manager
