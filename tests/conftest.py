"""
Pytest configuration and shared fixtures for all tests.

This module provides shared fixtures for the test suite, including:
- Credential stores for the Content and Admin API profiles
- A factory for mocked requests responses
- A mocked requests session
- An in-memory fake Ghost server for round-trip tests
"""
import json
import re
import uuid
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
import requests

from credentials import CredentialStore


GHOST_URL = "https://blog.example.com"
ADMIN_KEY_ID = "6489c2a9b1a0f0001f8d3a11"
ADMIN_KEY_SECRET = "a3f1" * 16
ADMIN_API_KEY = f"{ADMIN_KEY_ID}:{ADMIN_KEY_SECRET}"
CONTENT_API_KEY = "22444f78447824223cefc48062"


def build_response(json_data: Any = None, status_code: int = 200, text: Optional[str] = None) -> MagicMock:
    """Create a MagicMock that behaves like a requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Unprocessable Entity"

    if json_data is None and text is None:
        response.content = b""
        response.text = ""
        response.json.side_effect = ValueError("No JSON body")
    elif json_data is None:
        response.content = text.encode()
        response.text = text
        response.json.side_effect = ValueError("Not JSON")
    else:
        body = json.dumps(json_data)
        response.content = body.encode()
        response.text = body
        response.json.return_value = json_data

    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Client Error", response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def make_response():
    """Factory fixture returning mocked requests responses.

    Example:
        def test_something(make_response):
            response = make_response({"posts": []})
    """
    return build_response


@pytest.fixture
def credential_store():
    """CredentialStore with both Ghost profiles configured."""
    return CredentialStore({
        "ghostAdminApi": {"url": GHOST_URL, "api_key": ADMIN_API_KEY},
        "ghostContentApi": {"url": GHOST_URL, "api_key": CONTENT_API_KEY},
    })


@pytest.fixture
def mock_session(make_response):
    """MagicMock session whose request() returns an empty JSON object by default."""
    session = MagicMock()
    session.request.return_value = make_response({})
    return session


class FakeGhostSession:
    """Minimal in-memory Ghost Admin/Content API for round-trip tests.

    Supports creating, reading, updating and deleting posts by id.
    """

    POSTS_PATH = re.compile(r"/ghost/api/v\d+/(admin|content)/posts/(?:([0-9a-f]+)/)?$")

    def __init__(self):
        self.posts: Dict[str, Dict[str, Any]] = {}
        self.calls = []

    def request(self, method, url, params=None, headers=None, json=None, data=None, files=None, timeout=None):
        self.calls.append((method, url, params))
        match = self.POSTS_PATH.search(url)
        if not match:
            return build_response({"errors": [{"message": "Resource not found", "type": "NotFoundError"}]}, 404)

        post_id = match.group(2)
        if method == "POST":
            post = dict(json["posts"][0])
            post["id"] = uuid.uuid4().hex[:24]
            post["updated_at"] = "2024-01-15T10:00:00.000Z"
            self.posts[post["id"]] = post
            return build_response({"posts": [post]}, 201)
        if method == "GET" and post_id:
            if post_id not in self.posts:
                return build_response({"errors": [{"message": "Post not found.", "type": "NotFoundError"}]}, 404)
            return build_response({"posts": [self.posts[post_id]]})
        if method == "PUT" and post_id in self.posts:
            self.posts[post_id].update(json["posts"][0])
            return build_response({"posts": [self.posts[post_id]]})
        if method == "DELETE" and post_id in self.posts:
            del self.posts[post_id]
            return build_response(None, 204)
        return build_response({"errors": [{"message": "Unsupported request"}]}, 400)


@pytest.fixture
def fake_ghost():
    """In-memory fake Ghost server usable as a requests session."""
    return FakeGhostSession()
