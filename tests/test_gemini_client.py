"""Tests for the Gemini REST client."""
from unittest.mock import Mock, patch

import pytest
import requests

from app.services.gemini import GeminiClient, UpstreamError


def make_client(api_key="k-123"):
    return GeminiClient(
        api_key=api_key,
        model="gemini-1.5-flash",
        api_base="https://generativelanguage.googleapis.com/v1beta/",
        timeout=12,
    )


def gemini_response(text, status_code=200):
    response = Mock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.text = "upstream says no"
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


@patch("app.services.gemini.requests.post")
def test_generate_sends_prompt_and_inline_image(mock_post):
    mock_post.return_value = gemini_response('{"isValid": true}')

    text = make_client().generate("Is this civic?", "QUJD", "image/png")

    assert text == '{"isValid": true}'
    mock_post.assert_called_once()
    args, kwargs = mock_post.call_args
    assert args[0] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    )
    assert kwargs["params"] == {"key": "k-123"}
    assert kwargs["timeout"] == 12
    body = kwargs["json"]
    parts = body["contents"][0]["parts"]
    assert parts[0] == {"text": "Is this civic?"}
    assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": "QUJD"}}
    assert body["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 200}


@patch("app.services.gemini.requests.post")
def test_error_status_raises_with_status_code(mock_post):
    mock_post.return_value = gemini_response("", status_code=503)

    with pytest.raises(UpstreamError) as exc_info:
        make_client().generate("p", "QUJD", "image/jpeg")
    assert exc_info.value.status_code == 503


@patch("app.services.gemini.requests.post")
def test_missing_candidates_is_upstream_error(mock_post):
    response = gemini_response("")
    response.json.return_value = {"promptFeedback": {"blockReason": "SAFETY"}}
    mock_post.return_value = response

    with pytest.raises(UpstreamError) as exc_info:
        make_client().generate("p", "QUJD", "image/jpeg")
    assert exc_info.value.status_code is None


@patch("app.services.gemini.requests.post")
def test_transport_error_is_upstream_error(mock_post):
    mock_post.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(UpstreamError):
        make_client().generate("p", "QUJD", "image/jpeg")


@patch("app.services.gemini.requests.post")
def test_missing_api_key_skips_request(mock_post):
    with pytest.raises(UpstreamError):
        make_client(api_key=None).generate("p", "QUJD", "image/jpeg")
    mock_post.assert_not_called()
