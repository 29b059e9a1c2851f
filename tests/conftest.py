import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from crm_console.api.state import build_services
from crm_console.config.settings import Settings
from crm_console.storage.document_store import DocumentStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_root=tmp_path,
        data_dir=tmp_path / 'data',
        review_base_url='https://console.example.com',
    )


@pytest.fixture
def services(settings):
    """Fresh services over an empty data directory."""
    return build_services(settings)


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / 'store')


@pytest.fixture
def catalog(services):
    return services.catalog


@pytest.fixture
def make_product(catalog):
    def _make(name='Widget', **fields):
        return catalog.create_product({'name': name, **fields})
    return _make
