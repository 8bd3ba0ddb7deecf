"""Tests for the /validate-image endpoint."""
import time
from unittest.mock import Mock, patch

from app.core.config import settings


def gemini_response(text=None, status_code=200):
    response = Mock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.text = "error body"
    response.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return response


@patch("app.services.gemini.requests.post")
def test_missing_image_is_400_without_upstream_call(mock_post, client):
    for body in (
        {},
        {"imageBase64": ""},
        {"imageBase64": None, "imageType": "image/png"},
        {"imageBase64": "   "},
        {"imageBase64": "data:image/png;base64,"},
    ):
        r = client.post("/validate-image", json=body)
        assert r.status_code == 400
        assert r.json()["detail"] == "Image data is required"
    mock_post.assert_not_called()


@patch("app.services.gemini.requests.post")
def test_returns_model_verdict(mock_post, client):
    mock_post.return_value = gemini_response(
        'Sure! {"isValid": false, "reason": "Photo of a sandwich", "confidence": 97}'
    )

    r = client.post("/validate-image", json={"imageBase64": "data:image/jpeg;base64,/9j/4AAQ"})

    assert r.status_code == 200
    assert r.json() == {
        "isValid": False,
        "reason": "Photo of a sandwich",
        "confidence": 97,
        "fallback": False,
    }
    inline = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
    assert inline == {"mime_type": "image/jpeg", "data": "/9j/4AAQ"}


@patch("app.services.gemini.requests.post")
def test_overflowing_confidence_is_not_a_server_error(mock_post, client):
    mock_post.return_value = gemini_response('{"isValid": true, "reason": "x", "confidence": 1e999}')

    r = client.post("/validate-image", json={"imageBase64": "/9j/4AAQ"})

    assert r.status_code == 200
    assert r.json()["confidence"] == 60
    assert r.json()["fallback"] is False


@patch("app.services.gemini.requests.post")
def test_null_image_type_defaults_to_jpeg(mock_post, client):
    mock_post.return_value = gemini_response('{"isValid": true, "reason": "Pothole", "confidence": 90}')

    r = client.post("/validate-image", json={"imageBase64": "/9j/4AAQ", "imageType": None})

    assert r.status_code == 200
    inline = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
    assert inline["mime_type"] == "image/jpeg"


@patch("app.services.gemini.requests.post")
def test_overloaded_upstream_fails_open(mock_post, client, monkeypatch):
    sleeps = []
    monkeypatch.setattr(time, "sleep", sleeps.append)
    mock_post.return_value = gemini_response(status_code=503)

    r = client.post("/validate-image", json={"imageBase64": "/9j/4AAQ", "imageType": "image/png"})

    assert r.status_code == 200
    data = r.json()
    assert data["isValid"] is True
    assert data["fallback"] is True
    assert data["confidence"] == 50
    assert mock_post.call_count == settings.moderation_max_retries + 1
    assert sleeps == sorted(sleeps)


@patch("app.services.gemini.requests.post")
def test_bad_request_upstream_fails_open_after_one_call(mock_post, client):
    mock_post.return_value = gemini_response(status_code=400)

    r = client.post("/validate-image", json={"imageBase64": "/9j/4AAQ"})

    assert r.status_code == 200
    assert r.json()["fallback"] is True
    assert mock_post.call_count == 1


def test_cors_preflight(client):
    r = client.options(
        "/validate-image",
        headers={
            "Origin": "https://reports.civicmail.org",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, x-client-info, apikey, content-type",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
    allowed = r.headers["access-control-allow-headers"].lower()
    for header in ("authorization", "x-client-info", "apikey", "content-type"):
        assert header in allowed


@patch("app.services.gemini.requests.post")
def test_cors_header_on_response(mock_post, client):
    mock_post.return_value = gemini_response('{"isValid": true, "reason": "Pothole", "confidence": 80}')
    r = client.post(
        "/validate-image",
        json={"imageBase64": "/9j/4AAQ"},
        headers={"Origin": "https://reports.civicmail.org"},
    )
    assert r.headers["access-control-allow-origin"] == "*"
