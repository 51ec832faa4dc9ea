"""
Stripe utilities for the subscription API.

Pure functions for Stripe integration (no API calls, no side effects).
"""

from typing import Optional


# Stripe card error code -> message shown to the customer.
# Codes not listed here fall back to Stripe's own message.
CARD_ERROR_MESSAGES = {
    "card_declined": "カードが拒否されました。別のカードをお試しください。",
    "insufficient_funds": "カードの残高が不足しています。",
    "expired_card": "カードの有効期限が切れています。",
    "incorrect_cvc": "セキュリティコードが正しくありません。",
    "invalid_cvc": "セキュリティコードが無効です。",
    "incorrect_number": "カード番号が正しくありません。",
    "invalid_number": "カード番号が無効です。",
    "invalid_expiry_month": "有効期限（月）が無効です。",
    "invalid_expiry_year": "有効期限（年）が無効です。",
    "incorrect_zip": "郵便番号が正しくありません。",
    "processing_error": "カードの処理中にエラーが発生しました。しばらくしてから再度お試しください。",
    "lost_card": "このカードはご利用いただけません。",
    "stolen_card": "このカードはご利用いただけません。",
    "do_not_honor": "カード会社により取引が拒否されました。",
    "generic_decline": "カードが拒否されました。",
    "card_not_supported": "このカードはサポートされていません。",
    "currency_not_supported": "このカードは対応通貨での支払いに使用できません。",
}

# Used when Stripe raises an API error without any message
DEFAULT_API_ERROR_MESSAGE = "サーバーエラー"

# Characters of the payment token kept in logs
TOKEN_LOG_PREFIX = 6


def card_error_message(code: Optional[str], fallback: Optional[str]) -> str:
    """
    Customer-facing message for a Stripe card error.

    Args:
        code: Stripe error code (e.g. "card_declined"), may be None
        fallback: Stripe's raw error message

    Returns:
        Localized message for known codes, otherwise the raw message

    Examples:
        >>> card_error_message("expired_card", "Your card has expired.")
        "カードの有効期限が切れています。"

        >>> card_error_message("brand_new_code", "Something happened.")
        "Something happened."
    """
    if code and code in CARD_ERROR_MESSAGES:
        return CARD_ERROR_MESSAGES[code]
    return fallback or CARD_ERROR_MESSAGES["generic_decline"]


def api_error_message(message: Optional[str]) -> str:
    """Provider message, or the generic fallback when Stripe gave none"""
    return message or DEFAULT_API_ERROR_MESSAGE


def mask_token(token: Optional[str]) -> str:
    """
    Shorten a payment token for logging.

    Examples:
        >>> mask_token("tok_1AbCdEfGhIjKlMn")
        "tok_1A…(19)"

        >>> mask_token(None)
        "<none>"
    """
    if not token:
        return "<none>"
    if not isinstance(token, str):
        return f"<{type(token).__name__}>"
    return f"{token[:TOKEN_LOG_PREFIX]}…({len(token)})"
