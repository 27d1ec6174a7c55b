"""
End-to-end tests for the HTTP API against a stubbed upstream.
"""

from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from helpers import BASE_URL, Upstream, connection_refused
from postgate.api.app import create_app
from postgate.settings import Settings

PROBLEM_JSON = "application/problem+json"


@pytest.fixture
def settings():
    return Settings(
        UPSTREAM_BASE_URL=BASE_URL,
        UPSTREAM_TIMEOUT=5,
        RETRY_MAX_ATTEMPTS=2,
        RETRY_BASE_DELAY=0,
        CIRCUIT_MINIMUM_CALLS=2,
        CIRCUIT_WINDOW_SIZE=2,
    )


@pytest.fixture
def app(settings, upstream):
    return create_app(settings, transport=upstream.transport)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestPosts:
    """Test cases for /posts."""

    def test_get_all_posts(self, client):
        response = client.get("/posts")

        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data] == [1, 2, 3]
        assert data[0] == {
            "id": 1,
            "userId": 1,
            "title": "Sample Post",
            "body": "first body",
        }

    def test_filter_by_user_id_and_title(self, settings):
        upstream = Upstream(
            lambda request: httpx.Response(
                200,
                json=[
                    {"id": 1, "userId": 1, "title": "Sample Post", "body": "b"},
                    {"id": 2, "userId": 2, "title": "Other", "body": "b"},
                ],
            )
        )
        with TestClient(create_app(settings, transport=upstream.transport)) as client:
            response = client.get("/posts", params={"userId": 1, "title": "Sample"})

        assert response.status_code == 200
        assert response.json() == [
            {"id": 1, "userId": 1, "title": "Sample Post", "body": "b"}
        ]

    def test_posts_are_cached_between_requests(self, client, upstream):
        client.get("/posts")
        client.get("/posts", params={"userId": 2})

        assert upstream.count("/posts") == 1

    @pytest.mark.parametrize(
        "params",
        [{"userId": 0}, {"userId": "abc"}, {"title": ""}, {"title": "x" * 101}],
    )
    def test_invalid_query_params(self, client, upstream, params):
        response = client.get("/posts", params=params)

        assert response.status_code == 400
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        assert response.json()["title"] == "Invalid Input"
        assert upstream.calls == []

    def test_upstream_down_degrades_to_empty_list(self, settings):
        upstream = Upstream(connection_refused)
        with TestClient(create_app(settings, transport=upstream.transport)) as client:
            response = client.get("/posts")

        assert response.status_code == 200
        assert response.json() == []


class TestPostById:
    """Test cases for /posts/{id}."""

    def test_get_post(self, client):
        response = client.get("/posts/2")

        assert response.status_code == 200
        assert response.json() == {
            "id": 2,
            "userId": 2,
            "title": "Other",
            "body": "second body",
        }

    def test_not_found_problem_document(self, client):
        response = client.get("/posts/999")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith(PROBLEM_JSON)
        assert response.json() == {
            "title": "Resource Not Found",
            "detail": "Cannot find a Post with id 999",
            "status": 404,
        }

    @pytest.mark.parametrize("bad_id", ["0", "-1", "abc", str(2**31)])
    def test_invalid_id(self, client, upstream, bad_id):
        response = client.get(f"/posts/{bad_id}")

        assert response.status_code == 400
        assert response.json()["status"] == 400
        assert upstream.calls == []

    def test_upstream_down_is_service_unavailable(self, settings):
        upstream = Upstream(connection_refused)
        with TestClient(create_app(settings, transport=upstream.transport)) as client:
            response = client.get("/posts/1")

        assert response.status_code == 503
        assert response.json() == {
            "title": "Service Unavailable",
            "detail": "Service temporarily unavailable for post 1",
            "status": 503,
        }


class TestComments:
    """Test cases for comment endpoints."""

    def test_post_with_comments(self, client):
        response = client.get("/posts/1/comments")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == 1
        assert data["comments"][0] == {
            "id": 10,
            "postId": 1,
            "name": "c1",
            "email": "a@example.com",
            "body": "nice",
        }

    def test_post_with_comments_not_found(self, client):
        response = client.get("/posts/999/comments")

        assert response.status_code == 404
        assert response.json()["detail"] == "Cannot find a Post with id 999"

    def test_comments_by_post_id(self, client, upstream):
        response = client.get("/comments", params={"postId": 1})

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == [10, 11]
        assert upstream.calls == ["/comments"]

    def test_comments_require_post_id(self, client):
        response = client.get("/comments")

        assert response.status_code == 400
        assert "postId" in response.json()["detail"]


class TestErrorHandling:
    """Test cases for framework-level errors."""

    def test_method_not_allowed(self, client):
        response = client.post("/posts")

        assert response.status_code == 405
        assert response.json()["title"] == "API Error Occurred"

    def test_unknown_route(self, client):
        response = client.get("/users")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith(PROBLEM_JSON)

    def test_unexpected_exception_is_500(self, app, monkeypatch):
        monkeypatch.setattr(
            app.state.post_service, "get_posts", AsyncMock(side_effect=RuntimeError("boom"))
        )
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/posts")

        assert response.status_code == 500
        assert response.json() == {
            "title": "API Error Occurred",
            "detail": "boom",
            "status": 500,
        }


class TestHealth:

    def test_health(self, client):
        client.get("/posts")

        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["open_circuits"] == []
        assert data["circuit_breakers"]["get_posts"]["state"] == "CLOSED"
        assert data["cache"]["size"] == 1
        assert data["metrics"]["counters"]["posts.requests{type=all}"] == 1
        assert data["metrics"]["counters"]["posts.fetch.count"] == 1

    def test_scheduler_runs_with_app(self, app):
        with TestClient(app):
            assert app.state.cache_scheduler.is_running()
            assert app.state.cache_scheduler.scheduler.get_job("cache_cleanup_job")
        assert not app.state.cache_scheduler.is_running()
