# make the apps under web/apps importable by their short names before collection
import sys
from pathlib import Path

import pytest

APPS_DIR = Path(__file__).resolve().parent / "apps"
if str(APPS_DIR) not in sys.path:
    sys.path.insert(0, str(APPS_DIR))


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from catalog.http_adapters import storage_breaker
    from catalog.providers import reset_services

    settings.USE_HTTP_ADAPTERS = False
    reset_services()
    storage_breaker.reset()
    yield
    reset_services()


@pytest.fixture
def services():
    from catalog.providers import get_services

    return get_services()
