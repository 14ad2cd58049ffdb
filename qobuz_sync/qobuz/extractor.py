"""
Response extractor: HTTP status check, JSON decoding, failure mapping

extract() turns whatever the dispatcher produced into an ApiResult and never
raises. A 401 reply invalidates the session synchronously, before the caller
sees the result, so any handler that runs afterwards finds the session closed.
"""

import json
from typing import Callable, Optional, Union

from ..core.exceptions import (
    AuthExpired,
    ERROR_PARSE,
    QobuzSyncError,
    ServiceError,
    TransportFailure,
)
from ..utils.logger import get_logger
from .models import ApiResult, RawResponse

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401


class ResponseExtractor:
    """
    Validates and decodes replies

    Args:
        on_unauthorized: Called synchronously for every 401 reply
        on_error: Called with (error, resource) for every failed reply
    """

    def __init__(
        self,
        on_unauthorized: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[QobuzSyncError, str], None]] = None
    ):
        self.logger = get_logger(__name__)
        self.on_unauthorized = on_unauthorized
        self.on_error = on_error

    def extract(self, outcome: Union[RawResponse, TransportFailure]) -> ApiResult:
        if isinstance(outcome, TransportFailure):
            return self._fail(outcome, outcome.details.get('resource', ''))

        resource = outcome.resource

        if not 200 <= outcome.status < 300:
            text = outcome.body[:200].decode('utf-8', errors='replace')
            error_cls = AuthExpired if outcome.status == HTTP_UNAUTHORIZED else ServiceError
            error = error_cls(
                f"{resource} returned HTTP {outcome.status}",
                http_status=outcome.status,
                server_message=text,
                details={'resource': resource},
            )
            self.logger.error(f"Error when retrieving Qobuz results: {resource} ({outcome.status})")

            if outcome.status == HTTP_UNAUTHORIZED and self.on_unauthorized:
                self.on_unauthorized()

            return self._fail(error, resource)

        try:
            decoded = json.loads(outcome.body.decode('utf-8')) if outcome.body else {}
        except (UnicodeDecodeError, ValueError) as e:
            self.logger.error(f"Error while parsing Qobuz result for {resource}: {e}")
            return self._fail(self._parse_error(resource, outcome.status, str(e)), resource)

        if not isinstance(decoded, dict):
            self.logger.error(f"Unexpected Qobuz result for {resource}: {type(decoded).__name__}")
            return self._fail(self._parse_error(resource, outcome.status, "not a JSON object"), resource)

        return ApiResult(data=decoded)

    @staticmethod
    def _parse_error(resource: str, status: int, reason: str) -> ServiceError:
        return ServiceError(
            f"{resource} returned an undecodable body: {reason}",
            http_status=status,
            code=ERROR_PARSE,
            details={'resource': resource},
        )

    def _fail(self, error: QobuzSyncError, resource: str) -> ApiResult:
        if self.on_error:
            self.on_error(error, resource)
        return ApiResult(error=error)
