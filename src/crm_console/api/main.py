import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config.settings import get_settings
from .state import Services, get_services
from .products_api import router as products_router
from .bundles_api import router as bundles_router
from .discounts_api import router as discounts_router
from .terms_api import router as terms_router, review_router
from .reports_api import router as reports_router
from .quotes_api import router as quotes_router
from .invoices_api import router as invoices_router
from .settings_api import router as settings_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

COLLECTIONS = (
    'products', 'bundles', 'discounts', 'custom_terms', 'terms_review_requests',
    'invoices', 'sessions',
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting CRM Console API v%s", __version__)
    yield
    logger.info("Shutting down CRM Console API")


app = FastAPI(
    title="CRM Console API",
    description="Backend API for the CRM admin console: catalog, discounts, terms, invoices and reports",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Fixed sub-paths of /api/crm/products must register before /{product_id}
app.include_router(bundles_router)
app.include_router(discounts_router)
app.include_router(terms_router)
app.include_router(products_router)
app.include_router(review_router)
app.include_router(reports_router)
app.include_router(quotes_router)
app.include_router(invoices_router)
app.include_router(settings_router)


@app.get("/")
async def root():
    return {"status": "online", "message": "CRM Console API Active"}


@app.get("/system/status")
async def get_status(services: Services = Depends(get_services)):
    return {
        "data_dir": str(services.settings.data_dir),
        "counts": {name: services.store.count(name) for name in COLLECTIONS},
    }
