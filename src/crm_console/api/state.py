"""
Shared service instances for the API routers.

Everything hangs off one DocumentStore rooted at settings.data_dir.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine import QuoteEngine
from ..storage.document_store import DocumentStore
from ..services.catalog_service import CatalogService
from ..services.bundle_service import BundleService
from ..services.discount_service import DiscountService
from ..services.terms_service import TermsService
from ..services.invoice_service import InvoiceService
from ..services.session_service import SessionService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    catalog: CatalogService
    bundles: BundleService
    discounts: DiscountService
    terms: TermsService
    invoices: InvoiceService
    sessions: SessionService
    quotes: QuoteEngine


def build_services(settings: Settings) -> Services:
    store = DocumentStore(settings.data_dir)
    catalog = CatalogService(store, settings.list_limit, settings.default_currency)
    bundles = BundleService(store, catalog, settings.list_limit, settings.default_currency)
    discounts = DiscountService(store, settings.list_limit)
    logger.info("Data directory: %s", settings.data_dir)
    return Services(
        settings=settings,
        store=store,
        catalog=catalog,
        bundles=bundles,
        discounts=discounts,
        terms=TermsService(store, settings.review_base_url, settings.list_limit),
        invoices=InvoiceService(
            store,
            list_limit=settings.invoice_list_limit,
            number_start=settings.invoice_number_start,
            default_currency=settings.default_currency,
        ),
        sessions=SessionService(store),
        quotes=QuoteEngine(catalog, bundles, discounts, currency=settings.default_currency),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """FastAPI dependency returning the process-wide services."""
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services


def reset_services():
    global _services
    _services = None
