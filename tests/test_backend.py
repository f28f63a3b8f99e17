# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Unit tests for popguard.backend (classifier client, spam reporter)."""

from __future__ import annotations

import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from popguard.backend import (
    NO_EVIDENCE,
    USER_AGENT,
    ClassifierClient,
    ClassifierVerdict,
    ContentClassifier,
    NullClassifier,
    SpamReport,
    SpamReporter,
)

ENDPOINT = "https://classifier.example/api/classify"
REPORT_ENDPOINT = "https://classifier.example/api/report-spam"

# ── helpers ──────────────────────────────────────────────────────────


def _mock_response(body: str = "", status: int = 200):
    """Create a mock HTTP response for urllib.request.urlopen."""
    resp = MagicMock()
    resp.status = status
    resp.read.return_value = body.encode("utf-8")
    resp.__enter__ = MagicMock(return_value=resp)
    resp.__exit__ = MagicMock(return_value=False)
    return resp


def _sent_request(mock_open):
    req = mock_open.call_args.args[0]
    return req, json.loads(req.data.decode("utf-8"))


# ── ClassifierVerdict ────────────────────────────────────────────────


class TestClassifierVerdict:
    def test_camel_case_fields(self):
        verdict = ClassifierVerdict.model_validate({"fakeSoftware": True, "ageGate": 0})
        assert verdict.fake_software is True
        assert verdict.age_gate is False
        assert verdict.is_harmful is True

    def test_truthy_coercion(self):
        verdict = ClassifierVerdict.model_validate({"gambling": 1, "adult": None, "genericScam": "yes"})
        assert verdict.gambling is True
        assert verdict.adult is False
        assert verdict.generic_scam is True

    def test_no_evidence(self):
        assert NO_EVIDENCE.is_harmful is False
        assert ClassifierVerdict.model_validate({"unrelated": True}) == NO_EVIDENCE


# ── ClassifierClient ─────────────────────────────────────────────────


class TestClassifierClient:
    async def test_harmful_verdict(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response(json.dumps({"adult": True, "gambling": False}))
            verdict = await client.classify("https://x.example/", "Title", "Meta", "Snippet")
        assert verdict.adult is True
        assert verdict.is_harmful is True

    async def test_request_shape(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response("{}")
            await client.classify("https://x.example/", "Title", "Meta", "Snippet")

        req, payload = _sent_request(mock_open)
        assert req.full_url == ENDPOINT
        assert req.get_method() == "POST"
        assert req.get_header("Content-type") == "application/json"
        assert req.get_header("User-agent") == USER_AGENT
        assert payload == {
            "url": "https://x.example/",
            "title": "Title",
            "metaDescription": "Meta",
            "textSnippet": "Snippet",
        }
        # No timeout configured: urlopen is called without one.
        assert "timeout" not in mock_open.call_args.kwargs

    async def test_timeout_passed_through(self):
        client = ClassifierClient(ENDPOINT, timeout=2.5)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response("{}")
            await client.classify("u", "", "", "")
        assert mock_open.call_args.kwargs["timeout"] == 2.5

    async def test_fields_truncated(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response("{}")
            await client.classify("u" * 5000, "t" * 600, "m" * 600, "s" * 3000)
        _, payload = _sent_request(mock_open)
        assert len(payload["url"]) == 2000
        assert len(payload["title"]) == 512
        assert len(payload["metaDescription"]) == 512
        assert len(payload["textSnippet"]) == 1000

    async def test_http_error_is_no_evidence(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.side_effect = urllib.error.HTTPError(ENDPOINT, 500, "Server Error", {}, None)
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    async def test_network_error_is_no_evidence(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.side_effect = urllib.error.URLError("connection refused")
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    async def test_timeout_is_no_evidence(self):
        client = ClassifierClient(ENDPOINT, timeout=0.1)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.side_effect = TimeoutError("timed out")
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    @pytest.mark.parametrize("body", ["not json", "[1, 2]", ""])
    async def test_malformed_body_is_no_evidence(self, body):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response(body)
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    async def test_non_2xx_status_is_no_evidence(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response(json.dumps({"adult": True}), status=302)
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    async def test_unexpected_error_is_no_evidence(self):
        client = ClassifierClient(ENDPOINT)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.side_effect = RuntimeError("boom")
            verdict = await client.classify("https://x.example/", "", "", "")
        assert verdict == NO_EVIDENCE

    async def test_null_classifier(self):
        classifier = NullClassifier()
        assert isinstance(classifier, ContentClassifier)
        assert await classifier.classify("https://casino.example/", "casino", "", "") == NO_EVIDENCE


# ── SpamReporter ─────────────────────────────────────────────────────


class TestSpamReport:
    def test_payload(self):
        report = SpamReport(domain="spam.example", url="https://spam.example/x", timestamp=123, user_id="abc")
        assert report.to_payload() == {
            "domain": "spam.example",
            "url": "https://spam.example/x",
            "timestamp": 123,
            "userId": "abc",
        }

    def test_payload_without_user_and_truncation(self):
        report = SpamReport(domain="d" * 300, url="u" * 3000, timestamp=1)
        payload = report.to_payload()
        assert payload["userId"] is None
        assert len(payload["domain"]) == 255
        assert len(payload["url"]) == 2000


class TestSpamReporter:
    async def test_success(self):
        reporter = SpamReporter(REPORT_ENDPOINT)
        report = SpamReport(domain="spam.example", url="https://spam.example/", timestamp=1, user_id="id")
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response("", status=201)
            assert await reporter.report(report) is True
        req, payload = _sent_request(mock_open)
        assert req.full_url == REPORT_ENDPOINT
        assert payload["domain"] == "spam.example"
        assert mock_open.call_args.kwargs["timeout"] == 10.0

    async def test_failure_never_raises(self):
        reporter = SpamReporter(REPORT_ENDPOINT)
        report = SpamReport(domain="spam.example", url="https://spam.example/", timestamp=1)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.side_effect = urllib.error.URLError("offline")
            assert await reporter.report(report) is False

    async def test_rejected_status(self):
        reporter = SpamReporter(REPORT_ENDPOINT)
        report = SpamReport(domain="spam.example", url="https://spam.example/", timestamp=1)
        with patch("popguard.backend.urllib.request.urlopen") as mock_open:
            mock_open.return_value = _mock_response("", status=429)
            assert await reporter.report(report) is False
