"""
HTTP client for delivering reading batches to the configured endpoint.

One request per call. Every transport or HTTP failure is mapped to a
DeliveryOutcome; nothing is raised past send().
"""
from typing import Optional

import requests
import structlog

from .. import __version__
from ..config import DeliveryConfig
from ..errors import TransportError
from .batching import Batch
from .retry import DeliveryOutcome, classify_status

logger = structlog.get_logger()

USER_AGENT = f"location-agent/{__version__}"
DEFAULT_CONNECT_TIMEOUT_S = 30.0
DEFAULT_READ_TIMEOUT_S = 60.0

# Error bodies are only logged, keep them short
_MAX_DETAIL_CHARS = 200


class DeliveryClient:
    """Sends one batch per HTTP exchange over a shared session."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        read_timeout_s: float = DEFAULT_READ_TIMEOUT_S
    ):
        self._session = session or requests.Session()
        self._timeout = (connect_timeout_s, read_timeout_s)

    @staticmethod
    def build_headers(config: DeliveryConfig) -> dict[str, str]:
        """Fixed JSON headers overlaid with the configured ones."""
        headers = {
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': USER_AGENT,
        }
        headers.update(config.headers)
        return headers

    def send(self, batch: Batch, config: DeliveryConfig) -> DeliveryOutcome:
        """
        Deliver a batch. GET requests carry no body.

        Args:
            batch: Readings and extra fields to send
            config: Endpoint snapshot for this flush cycle

        Returns:
            Success, retryable, deferred or terminal failure outcome
        """
        body = None if config.method == 'GET' else batch.to_payload()

        try:
            response = self._session.request(
                config.method,
                config.url,
                json=body,
                headers=self.build_headers(config),
                timeout=self._timeout
            )
        except requests.RequestException as e:
            logger.warning(
                "delivery_request_failed",
                points=len(batch),
                error=str(e)
            )
            return DeliveryOutcome.failure(
                TransportError(f"{type(e).__name__}: {e}")
            )

        except Exception as e:
            logger.error(
                "delivery_request_unexpected_error",
                points=len(batch),
                error=str(e)
            )
            return DeliveryOutcome.failure(
                TransportError(f"{type(e).__name__}: {e}")
            )

        detail = "" if response.ok else response.text[:_MAX_DETAIL_CHARS]
        outcome = classify_status(response.status_code, detail)

        logger.debug(
            "delivery_response",
            points=len(batch),
            status=response.status_code,
            outcome=outcome.kind.value
        )
        return outcome
