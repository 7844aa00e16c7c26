"""Tests for the error taxonomy."""

import pytest

from feedpulse.errors import (
    ChannelNotAvailableError,
    ConfigurationError,
    ConflictError,
    FeedPulseError,
    InvalidRequestError,
    NotFoundError,
    ProviderNotAvailableError,
    UnknownSourceTypeError,
)


class TestClassification:
    @pytest.mark.parametrize(
        "error,classification",
        [
            (NotFoundError("x"), "not_found"),
            (InvalidRequestError("x"), "invalid_request"),
            (ConflictError("x"), "conflict"),
            (ConfigurationError("x"), "configuration"),
            (UnknownSourceTypeError("myspace"), "configuration"),
            (ProviderNotAvailableError("google"), "configuration"),
            (ChannelNotAvailableError("sms"), "configuration"),
        ],
    )
    def test_classification(self, error, classification):
        assert isinstance(error, FeedPulseError)
        assert error.to_dict()["error"] == classification

    def test_to_dict_with_details(self):
        error = NotFoundError("Stream not found", stream_id="s1")
        assert error.to_dict() == {
            "error": "not_found",
            "message": "Stream not found",
            "details": {"stream_id": "s1"},
        }

    def test_to_dict_without_details(self):
        assert InvalidRequestError("bad").to_dict() == {
            "error": "invalid_request",
            "message": "bad",
        }

    def test_specialised_errors_keep_subject(self):
        assert UnknownSourceTypeError("myspace").source_type == "myspace"
        assert ProviderNotAvailableError("google").provider == "google"
        assert ChannelNotAvailableError("sms").channel == "sms"
        assert str(ProviderNotAvailableError("x", reason="not configured")).endswith(
            "(not configured)"
        )
