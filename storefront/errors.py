from typing import Optional

from storefront.i18n import t


class StorefrontError(Exception):
    """Base error. ``key`` is an i18n message key, ``detail`` an optional server message."""

    status_code = 400
    default_key = "api.request_failed"

    def __init__(self, key: Optional[str] = None, detail: Optional[str] = None, **params):
        self.key = key or self.default_key
        self.detail = detail
        self.params = params
        super().__init__(detail or self.key)

    def localized(self, lang: Optional[str] = None) -> str:
        # server messages win over generic catalog text, as the storefront always showed them
        if self.detail:
            return self.detail
        return t(self.key, lang, **self.params)


class AuthError(StorefrontError):
    status_code = 401
    default_key = "auth.invalid_credentials"


class ValidationError(StorefrontError):
    status_code = 400


class NotFoundError(StorefrontError):
    status_code = 404


class DeliveryUnavailableError(StorefrontError):
    status_code = 400
    default_key = "delivery.not_available"


class PaymentError(StorefrontError):
    status_code = 502
    default_key = "payment.initiate_failed"


class ApiError(StorefrontError):
    """Backend answered non-2xx or could not be reached."""

    default_key = "api.request_failed"

    def __init__(self, detail: Optional[str] = None, status: Optional[int] = None, key: Optional[str] = None):
        super().__init__(key, detail)
        self.status = status
        self.status_code = 502 if status is None or status >= 500 else status
