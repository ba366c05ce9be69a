import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

# Load env from billing_api/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from billing_api.core.config import settings, validate_config  # noqa: E402
from billing_api.core.logging import configure_logging  # noqa: E402
from billing_api.core.validation import validate_env  # noqa: E402
from billing_api.core.auth import JWTAuthMiddleware  # noqa: E402
from billing_api.core.database import create_all_tables, get_database_url  # noqa: E402
from billing_api.core.errors import register_error_handlers  # noqa: E402
from billing_api.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from billing_api.api import accounts, health, plans, subscriptions, users  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("billing_api")
    logger.info("Starting billing API...")
    if get_database_url():
        create_all_tables()
    else:
        logger.warning("DATABASE_URL is not configured; skipping table creation")
    if settings.DISABLE_JWT:
        logger.warning("JWT authentication is disabled.")
    try:
        yield
    finally:
        logger.info("Stopping billing API...")


app = FastAPI(title="Billing API", lifespan=lifespan)

# Middlewares (last added runs first: request id is set before auth)
app.add_middleware(JWTAuthMiddleware)
app.add_middleware(RequestIdMiddleware)

register_error_handlers(app)

app.include_router(health.root_router)
app.include_router(plans.router)
app.include_router(users.router)
app.include_router(accounts.router)
app.include_router(accounts.services_router)
app.include_router(subscriptions.account_router)
app.include_router(subscriptions.user_router)
app.include_router(subscriptions.renew_router)
