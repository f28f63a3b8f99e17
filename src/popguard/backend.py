# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Clients for the external content classifier and the spam-report sink.

Both are best-effort collaborators: any network error, non-2xx status or
malformed body is logged and turned into "no evidence" (classifier) or a
dropped report (sink).  Nothing here raises to the caller and nothing is
retried.

HTTP is done with ``urllib.request`` in a worker thread so the event loop
never blocks on the network.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import __version__
from .errors import ClassifierError

logger = logging.getLogger(__name__)

USER_AGENT = f"popguard/{__version__}"

_MAX_URL = 2000
_MAX_TITLE = 512
_MAX_META = 512
_MAX_SNIPPET = 1000
_MAX_DOMAIN = 255

# ---------------------------------------------------------------------------
# Classifier verdict
# ---------------------------------------------------------------------------


class ClassifierVerdict(BaseModel):
    """Harmful-content categories returned by the classifier.

    Values are coerced by truthiness so ``1``/``"yes"``/``null`` never
    invalidate an otherwise well-formed response.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    gambling: bool = False
    adult: bool = False
    fake_software: bool = Field(default=False, alias="fakeSoftware")
    generic_scam: bool = Field(default=False, alias="genericScam")
    age_gate: bool = Field(default=False, alias="ageGate")

    @field_validator("*", mode="before")
    @classmethod
    def _truthy(cls, v: Any) -> bool:
        return bool(v)

    @property
    def is_harmful(self) -> bool:
        return self.gambling or self.adult or self.fake_software or self.generic_scam or self.age_gate


NO_EVIDENCE = ClassifierVerdict()


@runtime_checkable
class ContentClassifier(Protocol):
    async def classify(
        self, url: str, title: str, meta_description: str, text_snippet: str
    ) -> ClassifierVerdict: ...


class NullClassifier:
    """Classifier that never finds evidence (offline mode and tests)."""

    async def classify(
        self, url: str, title: str, meta_description: str, text_snippet: str
    ) -> ClassifierVerdict:
        return NO_EVIDENCE


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


def _post_json(url: str, payload: Any, timeout: float | None) -> tuple[int, bytes]:
    """POST *payload* as JSON. Returns (status, body); raises on transport errors."""
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        method="POST",
    )
    kwargs = {} if timeout is None else {"timeout": timeout}
    with urllib.request.urlopen(req, **kwargs) as resp:  # noqa: S310  # nosec B310
        return resp.status, resp.read()


# ---------------------------------------------------------------------------
# Classifier client
# ---------------------------------------------------------------------------


class ClassifierClient:
    """HTTP client for the page classification service."""

    def __init__(self, endpoint: str, *, timeout: float | None = None) -> None:
        self.endpoint = endpoint
        self.timeout = timeout

    def _fetch_verdict(self, payload: dict[str, str]) -> ClassifierVerdict:
        try:
            status, body = _post_json(self.endpoint, payload, self.timeout)
        except urllib.error.HTTPError as e:
            raise ClassifierError(f"classifier returned HTTP {e.code}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise ClassifierError(f"classifier unreachable: {e}") from e

        if not 200 <= status < 300:
            raise ClassifierError(f"classifier returned HTTP {status}", status=status)
        try:
            return ClassifierVerdict.model_validate_json(body)
        except ValidationError as e:
            raise ClassifierError("malformed classifier response", status=status) from e

    async def classify(
        self, url: str, title: str, meta_description: str, text_snippet: str
    ) -> ClassifierVerdict:
        """Classify a page; any failure yields ``NO_EVIDENCE``."""
        payload = {
            "url": (url or "")[:_MAX_URL],
            "title": (title or "")[:_MAX_TITLE],
            "metaDescription": (meta_description or "")[:_MAX_META],
            "textSnippet": (text_snippet or "")[:_MAX_SNIPPET],
        }
        try:
            verdict = await asyncio.to_thread(self._fetch_verdict, payload)
        except ClassifierError as e:
            logger.debug("Classifier gave no evidence for %s: %s", payload["url"], e)
            return NO_EVIDENCE
        except Exception:
            logger.warning("Classifier call failed for %s", payload["url"], exc_info=True)
            return NO_EVIDENCE
        logger.debug("Classifier verdict for %s: %s", payload["url"], verdict.model_dump())
        return verdict


# ---------------------------------------------------------------------------
# Spam report sink
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SpamReport:
    domain: str
    url: str
    timestamp: int  # wall-clock ms
    user_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "domain": self.domain[:_MAX_DOMAIN],
            "url": self.url[:_MAX_URL],
            "timestamp": self.timestamp,
            "userId": self.user_id[:_MAX_DOMAIN] if self.user_id else None,
        }


class SpamReporter:
    """Fire-and-forget reporter for user-marked spam domains."""

    def __init__(self, endpoint: str, *, timeout: float = 10.0) -> None:
        self.endpoint = endpoint
        self.timeout = timeout

    async def report(self, report: SpamReport) -> bool:
        """Send *report*. Returns True on a 2xx response; never raises."""
        try:
            status, _ = await asyncio.to_thread(_post_json, self.endpoint, report.to_payload(), self.timeout)
        except Exception as e:
            logger.debug("Spam report for %s dropped: %s", report.domain, e)
            return False
        ok = 200 <= status < 300
        if not ok:
            logger.debug("Spam report for %s rejected (HTTP %d)", report.domain, status)
        return ok
