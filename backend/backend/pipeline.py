"""
Subscription signup pipeline.

One inbound request -> exactly one response. Gates run in a fixed order and the
first failing gate ends the request:

    CORS headers -> preflight -> method -> sale window -> required fields
    -> Stripe key -> plan lookup -> Stripe customer -> Stripe subscription

The pipeline never retries and never deduplicates: two identical POSTs create
two customers and two subscriptions.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from backend.config import AppConfig
from backend.provider import API_ERROR, CARD_ERROR, ProviderError, SubscriptionProvider
from backend.sale_window import SaleWindow, format_utc
from backend.stripe_utils import api_error_message, card_error_message, mask_token

logger = logging.getLogger(__name__)

ACCEPTED_METHOD = "POST"
PREFLIGHT_METHOD = "OPTIONS"

MSG_METHOD_NOT_ALLOWED = "Method Not Allowed"
MSG_SALE_NOT_OPEN = "販売開始前です。販売開始までお待ちください。"
MSG_MISSING_FIELDS = "必須フィールドが不足しています。"
MSG_SERVER_CONFIG = "サーバー設定エラー"
MSG_INVALID_PLAN = "無効なプランです。"

REQUIRED_FIELDS = ("stripeToken", "email", "plan")


class SubscriptionRequest(BaseModel):
    """Inbound signup body. Non-string values are treated as absent."""
    model_config = ConfigDict(extra="ignore")

    stripeToken: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    plan: Optional[str] = None

    @classmethod
    def from_body(cls, body: Any) -> "SubscriptionRequest":
        if not isinstance(body, dict):
            return cls()
        return cls(**{
            key: value
            for key, value in body.items()
            if key in cls.model_fields and isinstance(value, str)
        })

    def missing_fields(self) -> List[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]


@dataclass
class PipelineResponse:
    status_code: int
    body: Optional[Dict[str, Any]] = None  # None -> empty body (preflight)
    headers: Dict[str, str] = field(default_factory=dict)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _describe_body(body: Any) -> str:
    """Body shape for logs: key names only, token masked"""
    if not isinstance(body, dict):
        return f"<{type(body).__name__}>"
    return f"keys={sorted(body)} token={mask_token(body.get('stripeToken'))}"


class SubscriptionPipeline:
    """Runs the signup gates for one request at a time. Holds no per-request state."""

    def __init__(
        self,
        config: AppConfig,
        provider: SubscriptionProvider,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config
        self.provider = provider
        self.clock = clock
        self.sale_window = SaleWindow(config.sale_start) if config.sale_start else None

    def _respond(self, status_code: int, body: Optional[Dict[str, Any]] = None) -> PipelineResponse:
        # CORS headers go on every response, errors and preflight included
        return PipelineResponse(status_code=status_code, body=body, headers=self.config.cors.as_headers())

    def _error(self, status_code: int, message: str, **extra: Any) -> PipelineResponse:
        return self._respond(status_code, {"status": "error", "message": message, **extra})

    def handle(self, method: str, body: Any) -> PipelineResponse:
        method = (method or "").upper()

        if method == PREFLIGHT_METHOD:
            logger.info("[SUBSCRIBE] OPTIONS request received")
            return self._respond(200)

        if method != ACCEPTED_METHOD:
            logger.info(f"[SUBSCRIBE] Non-POST request: {method}")
            return self._error(405, MSG_METHOD_NOT_ALLOWED)

        logger.info(f"[SUBSCRIBE] POST request received: {_describe_body(body)}")

        # Sale window runs before any field check: it's a global switch, not input validation
        now = self.clock()
        if self.sale_window is not None:
            not_open = self.sale_window.check(now)
            if not_open is not None:
                logger.info(
                    f"[SALE_WINDOW] Request before sale start: "
                    f"{not_open.seconds_until_start}s remaining"
                )
                return self._error(403, MSG_SALE_NOT_OPEN, debug=not_open.as_debug())

        request = SubscriptionRequest.from_body(body)
        missing = request.missing_fields()
        if missing:
            # Client only learns that something is missing, logs say what
            logger.info(f"[SUBSCRIBE] Missing required fields: {missing}")
            return self._error(400, MSG_MISSING_FIELDS)

        if not self.config.stripe_secret_key:
            logger.error("[SUBSCRIBE] STRIPE_SECRET_KEY not configured")
            return self._error(500, MSG_SERVER_CONFIG)

        price_id = self.config.plan_catalog.resolve(request.plan)
        if price_id is None:
            logger.info(f"[SUBSCRIBE] Invalid plan: {request.plan!r}")
            return self._error(400, MSG_INVALID_PLAN)

        return self._subscribe(request, price_id, now)

    def _subscribe(self, request: SubscriptionRequest, price_id: str, now: datetime) -> PipelineResponse:
        plan = request.plan
        try:
            customer_id = self.provider.create_customer(
                email=request.email,
                name=request.name or self.config.default_customer_name,
                source=request.stripeToken,
                metadata={"plan": plan, "signup_at": format_utc(now)},
            )
            subscription_id = self.provider.create_subscription(
                customer_id=customer_id,
                price_id=price_id,
                metadata={"plan": plan},
            )
        except ProviderError as e:
            return self._provider_error(e)
        except Exception as e:
            logger.error(f"[SUBSCRIBE] Unexpected provider failure: {e!r}", exc_info=True)
            return self._provider_error(ProviderError(API_ERROR))

        logger.info(
            f"[SUBSCRIBE] Signup complete: plan={plan} customer={customer_id} "
            f"subscription={subscription_id}"
        )
        return self._respond(200, {
            "status": "success",
            "subscription_id": subscription_id,
            "customer_id": customer_id,
            "redirect_url": self.config.redirect.url_for(plan),
        })

    def _provider_error(self, error: ProviderError) -> PipelineResponse:
        logger.error(f"[SUBSCRIBE] Stripe error: {error!r}")
        if error.is_card_error:
            return self._error(
                400,
                card_error_message(error.code, error.message),
                error_type=CARD_ERROR,
                error_code=error.code,
            )
        return self._error(500, api_error_message(error.message), error_type=API_ERROR)
