"""HTTP client for the external image-metadata analyzer.

The analyzer receives the report's media URLs (plus claimed coordinates) and
answers ``{"images": [ImageMetadata, ...]}``. Calls are bounded by an aiohttp
``ClientTimeout`` and guarded by the shared circuit breaker; every failure is
raised as ``AnalyzerError`` so the caller can degrade to a null score.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from report_trust.config import FAKE_DETECTION_SETTINGS
from report_trust.errors import AnalyzerError
from report_trust.models.schemas.fake_detection import ImageMetadata
from report_trust.utils import get_logger
from report_trust.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER, CircuitBreaker

logger = get_logger(__name__)

ANALYZER_NAME = "image_analyzer"


class ImageAnalyzerClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.base_url = base_url if base_url is not None else FAKE_DETECTION_SETTINGS.get("image_analyzer_url")
        self.timeout_seconds = float(
            timeout_seconds if timeout_seconds is not None else FAKE_DETECTION_SETTINGS["analyzer_timeout_seconds"]  # type: ignore[arg-type]
        )
        self.breaker = breaker or GLOBAL_CIRCUIT_BREAKER

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def analyze(
        self,
        media_urls: Sequence[str],
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> List[ImageMetadata]:
        if not media_urls or not self.enabled:
            return []

        allowed, reason = self.breaker.allow_call(ANALYZER_NAME)
        if not allowed:
            logger.warning("Image analyzer call blocked by circuit breaker", reason=reason)
            raise AnalyzerError(f"Image analyzer unavailable ({reason})")

        body = {"media_urls": list(media_urls), "latitude": latitude, "longitude": longitude}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(str(self.base_url), json=body) as response:
                    if response.status != 200:
                        self.breaker.record_failure(ANALYZER_NAME)
                        logger.error(
                            "Image analyzer request failed",
                            status_code=response.status,
                            url=self.base_url,
                        )
                        raise AnalyzerError(f"Image analyzer returned status {response.status}")
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.breaker.record_failure(ANALYZER_NAME)
            logger.warning("Image analyzer unreachable", url=self.base_url, error=str(e) or type(e).__name__)
            raise AnalyzerError(f"Image analyzer error: {type(e).__name__}") from e

        try:
            images = [ImageMetadata.model_validate(item) for item in data["images"]]
        except (KeyError, TypeError, PydanticValidationError) as e:
            self.breaker.record_failure(ANALYZER_NAME)
            logger.warning("Image analyzer returned a malformed payload", error=str(e))
            raise AnalyzerError("Image analyzer returned a malformed payload") from e

        self.breaker.record_success(ANALYZER_NAME)
        logger.debug("Image analyzer completed", images=len(images))
        return images


__all__ = ["ImageAnalyzerClient", "ANALYZER_NAME"]
