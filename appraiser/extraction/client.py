"""
TCG Appraiser — Feature Extraction Client

Asks the vision service to analyse one stored card image and returns the
FeatureEnvelope it produces (OCR blocks, border metrics, holo variance,
font metrics, capture quality, image metadata).

Error mapping:
    400 / 404 / 415 / 422          -> InvalidImageError (never retried)
    timeout, connection error,
    429, 5xx, other 4xx,
    malformed envelope             -> ExtractionError (retryable)

No internal retry: the workflow owns the retry policy for this step.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from appraiser.config import settings
from appraiser.errors import ExtractionError, InvalidImageError
from appraiser.schemas import FeatureEnvelope

logger = structlog.get_logger(__name__)

INVALID_IMAGE_STATUSES = frozenset({400, 404, 415, 422})


class FeatureExtractionClient:
    """
    Async client for the vision service.

    Usage:
        async with FeatureExtractionClient() as client:
            features = await client.extract_features("uploads/u1/c1/front.jpg")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or settings.VISION_SERVICE_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.VISION_SERVICE_API_KEY
        self._timeout = timeout or settings.EXTRACTION_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "FeatureExtractionClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=headers)
            self._owns_client = True
        return self._client

    async def extract_features(self, image_ref: str) -> FeatureEnvelope:
        """
        Extract features from the image stored under `image_ref`.

        Raises:
            InvalidImageError: the service rejected the image.
            ExtractionError: the service is unavailable or replied with garbage.
        """
        if not image_ref:
            raise InvalidImageError("image reference is empty")

        logger.info("extraction_request", image_ref=image_ref)
        try:
            response = await self._http().post(
                f"{self._base_url}/v1/features",
                json={"imageRef": image_ref},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("extraction_timeout", image_ref=image_ref, timeout_seconds=self._timeout)
            raise ExtractionError("Feature extraction timed out", image_ref=image_ref) from e
        except httpx.RequestError as e:
            logger.warning("extraction_request_error", image_ref=image_ref, error=str(e))
            raise ExtractionError(f"Feature extraction request failed: {e}", image_ref=image_ref) from e

        if response.status_code in INVALID_IMAGE_STATUSES:
            logger.warning("extraction_invalid_image", image_ref=image_ref, status_code=response.status_code)
            raise InvalidImageError(
                f"Vision service rejected image ({response.status_code})",
                image_ref=image_ref,
                status_code=response.status_code,
            )
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("extraction_service_unavailable", image_ref=image_ref, status_code=response.status_code)
            raise ExtractionError(
                f"Vision service unavailable ({response.status_code})",
                image_ref=image_ref,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise ExtractionError(
                f"Vision service refused request ({response.status_code})",
                image_ref=image_ref,
                status_code=response.status_code,
            )

        try:
            envelope = FeatureEnvelope.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.warning("extraction_malformed_envelope", image_ref=image_ref, error=str(e))
            raise ExtractionError("Vision service returned a malformed feature envelope", image_ref=image_ref) from e

        logger.info(
            "extraction_complete",
            image_ref=image_ref,
            ocr_blocks=len(envelope.ocr),
            holo_variance=envelope.holo_variance,
            blur_score=envelope.quality.blur_score,
        )
        return envelope
