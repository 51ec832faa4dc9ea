import asyncio
import json
import logging
import platform
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from backend.config import AppConfig, get_config
from backend.pipeline import PipelineResponse, SubscriptionPipeline
from backend.provider import StripeSubscriptionProvider, SubscriptionProvider
from backend.sale_window import format_utc

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Malformed settings should stop the deploy, not surface on the first signup
    get_config()
    yield


app = FastAPI(title="Subscription Signup API", lifespan=lifespan)

# CORS headers come from AppConfig.cors, not CORSMiddleware
SUBSCRIBE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]

# Characters of STRIPE_SECRET_KEY shown by the diagnostics endpoint
KEY_PREFIX_LENGTH = 10

# Bodies parsed as HTML form fields instead of JSON
FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def get_provider(config: AppConfig = Depends(get_config)) -> SubscriptionProvider:
    return StripeSubscriptionProvider(api_key=config.stripe_secret_key or "")


def get_pipeline(
    config: AppConfig = Depends(get_config),
    provider: SubscriptionProvider = Depends(get_provider),
) -> SubscriptionPipeline:
    return SubscriptionPipeline(config, provider)


async def read_body(request: Request):
    """
    Parsed signup body: JSON or HTML form fields.

    Returns None when the body is empty or unreadable (field gate rejects it).
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        return {key: value for key, value in form.items()}

    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.info("[SUBSCRIBE] Request body is not valid JSON")
        return None


def to_http_response(result: PipelineResponse) -> Response:
    if result.body is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)


@app.get("/")
def read_root():
    return {"message": "Subscription Signup API", "status": "running"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.api_route("/api/subscribe", methods=SUBSCRIBE_METHODS)
async def subscribe(request: Request, pipeline: SubscriptionPipeline = Depends(get_pipeline)):
    """
    Create a Stripe customer + subscription from a tokenized card.

    Body:
        {"stripeToken": str, "name": str (optional), "email": str, "plan": "initiate"|"warrior"|"guardian"}

    Returns:
        200 {"status": "success", "subscription_id", "customer_id", "redirect_url"}

    Errors:
        400: Missing fields, invalid plan, card declined (error_type="card_error")
        403: Sale window not open yet (debug payload with remaining seconds)
        405: Method other than POST/OPTIONS
        500: STRIPE_SECRET_KEY missing or Stripe API error (error_type="api_error")
    """
    body = await read_body(request) if request.method == "POST" else None
    # Stripe SDK calls block; keep them off the event loop
    result = await asyncio.to_thread(pipeline.handle, request.method, body)
    return to_http_response(result)


@app.get("/api/test")
def diagnostics(config: AppConfig = Depends(get_config)):
    """
    Deployment check: confirms the function runs and which settings are present.

    Never returns secrets, only presence flags and the key prefix (test/live mode).
    """
    key = config.stripe_secret_key
    env_check = {
        "stripe_key_exists": bool(key),
        "stripe_key_prefix": key[:KEY_PREFIX_LENGTH] if key else "NOT SET",
    }
    for plan, configured in config.plan_catalog.configured_plans().items():
        env_check[f"price_{plan}_exists"] = configured
    env_check["sale_start_time_utc"] = format_utc(config.sale_start) if config.sale_start else None
    env_check["python_version"] = platform.python_version()

    return {
        "status": "ok",
        "message": "Subscription API is working!",
        "timestamp": format_utc(datetime.now(timezone.utc)),
        "env_check": env_check,
    }
