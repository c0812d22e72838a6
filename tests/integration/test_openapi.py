"""
Integration tests for OpenAPI documentation.

Verifies OpenAPI schema is correctly generated for all endpoints.
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def schema(client: TestClient) -> dict:
    response = client.get("/openapi.json")
    assert response.status_code == 200
    return response.json()


class TestOpenAPISchema:
    def test_title_and_version(self, schema: dict) -> None:
        assert schema["info"]["title"] == "campus-auth"
        assert schema["info"]["version"] == "0.1.0"

    @pytest.mark.parametrize(
        ("path", "method"),
        [
            ("/v1/auth/register/initiate", "post"),
            ("/v1/auth/register/complete", "post"),
            ("/v1/auth/login", "post"),
            ("/v1/auth/refresh", "post"),
            ("/v1/auth/logout", "post"),
            ("/v1/auth/me", "get"),
            ("/v1/users/{username}", "get"),
            ("/v1/users/profile", "put"),
            ("/v1/users/{user_id}/follow", "post"),
            ("/v1/users/{user_id}/follow", "delete"),
            ("/v1/users/{user_id}/followers", "get"),
            ("/v1/users/{user_id}/following", "get"),
            ("/v1/posts", "post"),
            ("/v1/posts/feed", "get"),
            ("/v1/posts/{post_id}", "get"),
            ("/v1/posts/{post_id}", "delete"),
            ("/v1/posts/{post_id}/like", "post"),
            ("/v1/posts/{post_id}/like", "delete"),
            ("/v1/posts/{post_id}/comments", "get"),
            ("/v1/posts/{post_id}/comments", "post"),
            ("/v1/pages", "get"),
            ("/v1/pages", "post"),
            ("/v1/pages/meta/categories", "get"),
            ("/v1/pages/{slug}", "get"),
            ("/v1/pages/{page_id}", "put"),
            ("/v1/pages/{page_id}/members", "post"),
            ("/v1/pages/{page_id}/follow", "post"),
            ("/v1/pages/{page_id}/follow", "delete"),
            ("/v1/pages/{page_id}/posts", "get"),
            ("/v1/messages/conversations", "get"),
            ("/v1/messages/conversations", "post"),
            ("/v1/messages/conversations/{conversation_id}", "get"),
            ("/v1/messages/conversations/{conversation_id}", "post"),
            ("/v1/messages/unread", "get"),
            ("/health", "get"),
        ],
    )
    def test_endpoint_documented(self, schema: dict, path: str, method: str) -> None:
        assert method in schema["paths"][path]

    def test_complete_request_uses_camel_case(self, schema: dict) -> None:
        properties = schema["components"]["schemas"]["CompleteRegistrationRequest"]["properties"]

        assert {"email", "otp", "password", "fullName", "username"} <= set(properties)

    def test_bearer_scheme_documented(self, schema: dict) -> None:
        assert "HTTPBearer" in schema["components"]["securitySchemes"]

    def test_rate_limited_routes_document_429(self, schema: dict) -> None:
        for path in ("/v1/auth/register/initiate", "/v1/auth/register/complete", "/v1/auth/login"):
            assert "429" in schema["paths"][path]["post"]["responses"]
