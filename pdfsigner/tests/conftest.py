import pytest

from pdfsigner.app.core.config import Settings, get_settings
from pdfsigner.app.services.cert_store import InMemoryCertificateStore, StoreScope
from pdfsigner.app.services.locator import CertificateLocator
from pdfsigner.tests.fixtures.cert_factory import make_credential


@pytest.fixture(scope="session")
def alice():
    return make_credential("Alice", "A1")


@pytest.fixture(scope="session")
def bob():
    return make_credential("Bob", "B2")


@pytest.fixture(scope="session")
def carol_ec():
    return make_credential("Carol", "C3", key_type="ec")


@pytest.fixture(scope="session")
def anonymous():
    """Signing credential without a SERIALNUMBER attribute."""
    return make_credential("Anonymous Signer")


@pytest.fixture
def store(alice, bob, carol_ec, anonymous):
    return InMemoryCertificateStore(
        {StoreScope.CURRENT_USER: [alice, bob, carol_ec, anonymous]}
    )


@pytest.fixture
def locator(store):
    return CertificateLocator(store)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        user_store_dir=tmp_path / "user-store",
        machine_store_dir=tmp_path / "machine-store",
        _env_file=None,
    )


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    for name in (
        "PDFSIGNER_REQUIRE_IDENTITY_ATTRIBUTE",
        "PDFSIGNER_REQUIRE_WHOLE_DOCUMENT_COVERAGE",
        "PDFSIGNER_IDENTITY_ATTRIBUTE_KEYS",
        "PDFSIGNER_IDENTITY_ATTRIBUTE_LABEL",
        "PDFSIGNER_LOG_LEVEL",
        "PDFSIGNER_USER_STORE_DIR",
        "PDFSIGNER_MACHINE_STORE_DIR",
        "PDFSIGNER_STORE_PASSPHRASE",
        "PDFSIGNER_DEFAULT_REASON",
        "PDFSIGNER_VERIFY_AFTER_BATCH_SIGNING",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
