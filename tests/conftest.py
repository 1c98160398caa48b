import os
import tempfile

# Keep the import-time datastore out of the user's home directory.
os.environ.setdefault("MISAN_DB_PATH", os.path.join(tempfile.mkdtemp(), "misan_test.db"))

import pytest

from db.store import DataStore
import misan.core.auth as auth_module
import misan.core.state as state_module
import misan.services.account_service as account_service
import misan.services.alert_rule_service as alert_rule_service
import misan.services.alert_service as alert_service
import misan.services.llm_settings_service as llm_settings_service
import misan.services.settings_service as settings_service

_STORE_MODULES = (
    state_module,
    auth_module,
    account_service,
    alert_rule_service,
    alert_service,
    llm_settings_service,
    settings_service,
)


@pytest.fixture
def temp_store(monkeypatch, tmp_path):
    """Fresh datastore swapped in for the shared one."""
    store = DataStore(str(tmp_path / "runtime_test.db"))
    store.init_db()
    for module in _STORE_MODULES:
        monkeypatch.setattr(module, "store", store)
    return store
