"""
TCG Appraiser — Test builders and collaborator fakes

Imported by conftest.py and directly by test modules that need to build
features, comps or images with non-default values.
"""

from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import numpy as np
from PIL import Image

from appraiser.errors import ObjectStoreError, PriceSourceError, ReasoningError
from appraiser.pricing.sources.base import BasePriceSource
from appraiser.schemas import (
    BorderMetrics,
    FeatureEnvelope,
    FontMetrics,
    ImageMetadata,
    ImageQuality,
    OCRBlock,
    PriceQuery,
    RawComp,
)

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)

GENUINE_OCR_TEXTS = (
    "Charizard",
    "HP 120",
    "Weakness",
    "Resistance",
    "Retreat",
    "Illus. Mitsuhiro Arita",
    "© 1995, 96, 98 Nintendo, Creatures, GAME FREAK",
    "Pokémon",
)


class StepClock:
    """Deterministic clock: each call returns a time one second later."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


class InMemoryObjectStore:
    def __init__(self, objects: Optional[dict[str, bytes]] = None) -> None:
        self.objects = dict(objects or {})

    async def get_bytes(self, key: str) -> bytes:
        try:
            return self.objects[key]
        except KeyError as e:
            raise ObjectStoreError(f"missing {key}") from e

    async def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))


class ScriptedReasoningService:
    """
    ReasoningService returning canned replies in order. An exception in the
    script is raised instead of returned.
    """

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, str]] = []

    async def invoke(self, system: str, prompt: str) -> str:
        self.calls.append((system, prompt))
        if not self.replies:
            raise ReasoningError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


def make_features(
    ocr_texts: tuple[str, ...] = GENUINE_OCR_TEXTS,
    ocr_confidence: float = 0.95,
    holo_variance: float = 0.6,
    symmetry: float = 0.95,
    border_ratio: float = 0.15,
    kerning: tuple[float, ...] = (0.01, 0.012, 0.011),
    alignment: float = 0.95,
    font_size_variance: float = 5.0,
) -> FeatureEnvelope:
    return FeatureEnvelope(
        ocr=tuple(OCRBlock(text=t, confidence=ocr_confidence) for t in ocr_texts),
        borders=BorderMetrics(
            top_ratio=border_ratio,
            bottom_ratio=border_ratio,
            left_ratio=border_ratio,
            right_ratio=border_ratio,
            symmetry_score=symmetry,
        ),
        holo_variance=holo_variance,
        font_metrics=FontMetrics(kerning=kerning, alignment=alignment, font_size_variance=font_size_variance),
        quality=ImageQuality(blur_score=0.9, glare_detected=False, brightness=0.6),
        image_meta=ImageMetadata(width=750, height=1050, format="png", size_bytes=120_000),
    )


def features_payload(**kwargs) -> dict:
    """FeatureEnvelope as the vision service sends it (camelCase JSON)."""
    return make_features(**kwargs).model_dump(mode="json", by_alias=True)


def make_comp(
    price: str,
    source: str = "ebay",
    currency: str = "USD",
    condition: str = "Near Mint",
    days_ago: float = 1.0,
) -> RawComp:
    return RawComp(
        source=source,
        price=Decimal(price),
        currency=currency,
        condition=condition,
        sold_at=NOW - timedelta(days=days_ago),
    )


def make_png(seed: int = 0, size: int = 64) -> bytes:
    """Deterministic noise image, PNG-encoded."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(size, size), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels, mode="L").save(buffer, format="PNG")
    return buffer.getvalue()


class StubSource(BasePriceSource):
    """Price source returning fixed comps, or failing every time."""

    def __init__(self, name: str, comps: Optional[list[RawComp]] = None, fail: bool = False, configured: bool = True):
        self.name = name
        super().__init__(max_retries=0, base_backoff=0)
        self._comps = comps or []
        self._fail = fail
        self._configured = configured
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def _search(self, query: PriceQuery) -> list[RawComp]:
        self.calls += 1
        if self._fail:
            raise PriceSourceError(f"{self.name} is down", source=self.name)
        return list(self._comps)
