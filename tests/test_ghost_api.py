"""
Unit Tests for the Ghost API Client.

Test Coverage:
    - URL construction per source, version override and explicit URI
    - Authentication per source (query key vs. Authorization header)
    - Pagination across pages, max_pages guard and missing metadata
    - Error normalization for HTTP errors and timeouts
    - Empty responses
    - Credential verification
"""
import pytest
import requests

from ghost.errors import ApiRequestFailed, InvalidConfiguration, MissingCredentials
from ghost.ghost_api import ADMIN_API, CONTENT_API, PAGE_SIZE, GhostApiClient
from credentials import CredentialStore

from conftest import CONTENT_API_KEY, GHOST_URL


def _page(posts, next_page):
    return {"posts": posts, "meta": {"pagination": {"page": 1, "limit": PAGE_SIZE, "next": next_page}}}


def test_content_request_url_and_key(credential_store, mock_session, make_response):
    """Test that Content API calls use v3 and the key query parameter."""
    mock_session.request.return_value = make_response({"posts": [{"id": "1"}]})
    client = GhostApiClient(credential_store, source=CONTENT_API, session=mock_session)

    result = client.request("GET", "/content/posts/", query={"limit": 5})

    assert result == {"posts": [{"id": "1"}]}
    args, kwargs = mock_session.request.call_args
    assert args == ("GET", f"{GHOST_URL}/ghost/api/v3/content/posts/")
    assert kwargs["params"] == {"limit": 5, "key": CONTENT_API_KEY}
    assert "Authorization" not in kwargs["headers"]
    assert kwargs["json"] is None
    assert kwargs["timeout"] == 30


def test_admin_request_url_and_token(credential_store, mock_session):
    """Test that Admin API calls use v2 and a Ghost token header."""
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    client.request("POST", "/admin/posts/", body={"posts": [{"title": "Hi"}]}, query={"source": "html"})

    args, kwargs = mock_session.request.call_args
    assert args == ("POST", f"{GHOST_URL}/ghost/api/v2/admin/posts/")
    assert kwargs["headers"]["Authorization"].startswith("Ghost ")
    assert kwargs["params"] == {"source": "html"}
    assert kwargs["json"] == {"posts": [{"title": "Hi"}]}


def test_empty_body_and_query_omitted(credential_store, mock_session):
    """Test that an empty body and query are not sent."""
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    client.request("GET", "/admin/posts/abc/", body={}, query={})

    _, kwargs = mock_session.request.call_args
    assert kwargs["json"] is None
    assert kwargs["params"] is None


def test_explicit_uri_overrides_computed_url(credential_store, mock_session):
    """Test that an explicit URI is used verbatim."""
    client = GhostApiClient(credential_store, source=CONTENT_API, session=mock_session)

    client.request("GET", "/ignored/", uri="https://other.example.com/ghost/api/v3/content/tags/")

    args, _ = mock_session.request.call_args
    assert args[1] == "https://other.example.com/ghost/api/v3/content/tags/"


def test_library_default_version(credential_store, mock_session):
    """Test that the default version uses unversioned paths and Accept-Version."""
    client = GhostApiClient(credential_store, source=ADMIN_API, api_version="default", session=mock_session)

    client.request("GET", "/admin/posts/")

    args, kwargs = mock_session.request.call_args
    assert args[1] == f"{GHOST_URL}/ghost/api/admin/posts/"
    assert kwargs["headers"]["Accept-Version"] == "v5.0"


def test_version_override(credential_store, mock_session):
    """Test that api_version replaces the default tag."""
    client = GhostApiClient(credential_store, source=CONTENT_API, api_version="v4", session=mock_session)

    descriptor = client.build_request("GET", "/content/posts/")

    assert descriptor.uri == f"{GHOST_URL}/ghost/api/v4/content/posts/"
    assert "Accept-Version" not in descriptor.headers


def test_unknown_source_rejected(credential_store):
    """Test that an unknown source raises InvalidConfiguration."""
    with pytest.raises(InvalidConfiguration):
        GhostApiClient(credential_store, source="membersApi")


def test_missing_credentials_raised_before_request(mock_session):
    """Test that an unconfigured profile fails without touching the network."""
    client = GhostApiClient(CredentialStore(), source=ADMIN_API, session=mock_session)

    with pytest.raises(MissingCredentials):
        client.request("GET", "/admin/posts/")
    mock_session.request.assert_not_called()


def test_request_all_items_follows_pages(credential_store, mock_session, make_response):
    """Test that pages are fetched until next is null and items concatenated."""
    mock_session.request.side_effect = [
        make_response(_page([{"id": 1}, {"id": 2}], 2)),
        make_response(_page([{"id": 3}], None)),
    ]
    client = GhostApiClient(credential_store, source=CONTENT_API, session=mock_session)
    query = {"filter": "tag:news"}

    posts = client.request_all_items("posts", "GET", "/content/posts/", query=query)

    assert [p["id"] for p in posts] == [1, 2, 3]
    assert mock_session.request.call_count == 2
    pages = [call.kwargs["params"]["page"] for call in mock_session.request.call_args_list]
    assert pages == [1, 2]
    first_params = mock_session.request.call_args_list[0].kwargs["params"]
    assert first_params["limit"] == PAGE_SIZE
    assert first_params["filter"] == "tag:news"
    # Caller's query is left alone
    assert query == {"filter": "tag:news"}


def test_request_all_items_missing_meta_stops(credential_store, mock_session, make_response):
    """Test that a response without pagination metadata ends the loop."""
    mock_session.request.return_value = make_response({"posts": [{"id": 1}]})
    client = GhostApiClient(credential_store, source=CONTENT_API, session=mock_session)

    posts = client.request_all_items("posts", "GET", "/content/posts/")

    assert posts == [{"id": 1}]
    assert mock_session.request.call_count == 1


def test_request_all_items_max_pages_guard(credential_store, mock_session, make_response, caplog):
    """Test that max_pages stops a server that always reports a next page."""
    mock_session.request.side_effect = [make_response(_page([{"id": n}], n + 1)) for n in range(1, 10)]
    client = GhostApiClient(credential_store, source=CONTENT_API, max_pages=3, session=mock_session)

    posts = client.request_all_items("posts", "GET", "/content/posts/")

    assert len(posts) == 3
    assert mock_session.request.call_count == 3
    assert "maximum page limit" in caplog.text


def test_http_error_normalized(credential_store, mock_session, make_response):
    """Test that a 4xx response raises ApiRequestFailed with Ghost errors."""
    mock_session.request.return_value = make_response(
        {"errors": [{"message": "Validation error, cannot save post.", "context": "Title is required"}]},
        422
    )
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    with pytest.raises(ApiRequestFailed) as exc_info:
        client.request("POST", "/admin/posts/", body={"posts": [{}]})

    assert exc_info.value.details["statusCode"] == 422
    assert "Title is required" in exc_info.value.message


def test_timeout_normalized(credential_store, mock_session):
    """Test that a timeout raises ApiRequestFailed."""
    mock_session.request.side_effect = requests.exceptions.Timeout("read timed out")
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    with pytest.raises(ApiRequestFailed) as exc_info:
        client.request("GET", "/admin/posts/")

    assert exc_info.value.details["rawError"] == "read timed out"


def test_no_content_response_returns_empty_dict(credential_store, mock_session, make_response):
    """Test that a 204 response yields an empty mapping."""
    mock_session.request.return_value = make_response(None, 204)
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    assert client.request("DELETE", "/admin/posts/abc/") == {}


def test_invalid_json_response(credential_store, mock_session, make_response):
    """Test that a non-JSON success body raises ApiRequestFailed."""
    mock_session.request.return_value = make_response(text="<html>maintenance</html>")
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    with pytest.raises(ApiRequestFailed) as exc_info:
        client.request("GET", "/admin/site/")

    assert exc_info.value.details["responseData"] == "<html>maintenance</html>"


def test_verify_credentials(credential_store, mock_session, make_response):
    """Test credential checks against the site endpoints."""
    client = GhostApiClient(credential_store, source=CONTENT_API, session=mock_session)
    mock_session.request.return_value = make_response({"settings": {"title": "Blog"}})

    assert client.verify_credentials() is True
    assert mock_session.request.call_args[0][1].endswith("/content/settings/")

    mock_session.request.return_value = make_response({"errors": [{"message": "Unknown Content API Key"}]}, 401)
    assert client.verify_credentials() is False


def test_verify_credentials_missing_profile(mock_session):
    """Test that missing credentials make verification fail quietly."""
    client = GhostApiClient(CredentialStore(), source=ADMIN_API, session=mock_session)

    assert client.verify_credentials() is False


def test_from_config(credential_store, mock_session):
    """Test creating a client from configuration."""
    config = {"ghost": {"timeout": 12, "max_pages": 4, "api_version": "v3"}}

    client = GhostApiClient.from_config(config, credential_store, source=ADMIN_API, session=mock_session)

    assert client.timeout == 12
    assert client.max_pages == 4
    assert client.version == "v3"
    assert client.profile == "ghostAdminApi"


def test_post_multipart_sends_open_files(credential_store, mock_session, tmp_path):
    """Test that file parts are sent as (filename, handle, type) and closed afterwards."""
    staged = tmp_path / "staged.png"
    staged.write_bytes(b"\x89PNG")
    client = GhostApiClient(credential_store, source=ADMIN_API, session=mock_session)

    client.post_multipart(
        "/admin/images/upload/",
        {"file": (str(staged), "cover.png", "image/png")},
        {"ref": None, "purpose": "image"}
    )

    _, kwargs = mock_session.request.call_args
    filename, handle, content_type = kwargs["files"]["file"]
    assert filename == "cover.png"
    assert content_type == "image/png"
    assert handle.closed
    assert kwargs["data"] == {"purpose": "image"}
    assert kwargs["json"] is None


@pytest.mark.parametrize("source,profile,version", [
    (CONTENT_API, "ghostContentApi", "v3"),
    (ADMIN_API, "ghostAdminApi", "v2"),
])
def test_source_selects_profile_and_version(credential_store, source, profile, version):
    """Test that each source resolves its own credential profile and version tag."""
    client = GhostApiClient(credential_store, source=source)

    assert client.profile == profile
    assert client.version == version
