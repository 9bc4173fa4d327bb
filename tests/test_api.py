"""
Tests for the HTTP API. The app is wired to in-memory doubles via conftest.
"""
from fastapi.testclient import TestClient

from conftest import FakeEnricher, make_item
from devdigest.api.app import create_app
from devdigest.config import Settings
from devdigest.models import ContentType, Platform


def seed(store, n, **kwargs):
    for i in range(n):
        store.insert_one(make_item(f"https://blog.example.com/{i}", f"Post {i}", days_ago=i * 0.1, **kwargs))


def test_read_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_factory_configures_logging(monkeypatch, pipeline):
    levels = []
    monkeypatch.setattr("devdigest.api.app.configure_logging", levels.append)

    create_app(Settings(app_env="development", log_level="DEBUG"), pipeline=pipeline)

    assert levels == ["DEBUG"]


class TestListArticles:
    def test_pagination_last_page(self, client, store):
        seed(store, 25)

        response = client.get("/articles", params={"page": 3, "limit": 12})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["count"] == 1
        assert data["total"] == 25
        assert data["page"] == 3
        assert data["totalPages"] == 3

    def test_defaults_and_newest_first(self, client, store):
        seed(store, 3)

        data = client.get("/articles").json()

        assert [a["title"] for a in data["data"]] == ["Post 0", "Post 1", "Post 2"]
        assert data["totalPages"] == 1

    def test_filters(self, client, store):
        seed(store, 2)
        store.insert_one(make_item("https://ios.example.com/1", "Swift", platform=Platform.IOS))
        store.insert_one(make_item("https://www.youtube.com/watch?v=v", "Video", content_type=ContentType.VIDEO))
        store.insert_one(make_item("https://blog.example.com/old", "Old", days_ago=30))

        assert client.get("/articles", params={"platform": "ios"}).json()["total"] == 1
        assert client.get("/articles", params={"content_type": "video"}).json()["total"] == 1
        assert client.get("/articles", params={"days": 60}).json()["total"] == 5

    def test_huge_days_window_returns_everything(self, client, store):
        seed(store, 2)
        store.insert_one(make_item("https://blog.example.com/old", "Old", days_ago=3650))

        response = client.get("/articles", params={"days": 1000000})

        assert response.status_code == 200
        assert response.json()["total"] == 3

    def test_invalid_params_are_400(self, client):
        for params in ({"page": 0}, {"limit": 101}, {"limit": 0}, {"days": 0},
                       {"platform": "desktop"}, {"content_type": "podcast"}, {"days": "abc"}):
            response = client.get("/articles", params=params)
            assert response.status_code == 400, params
            assert response.json()["success"] is False


class TestGetArticle:
    def test_found(self, client, store):
        item = make_item("https://x/y", "Foo")
        store.insert_one(item)

        response = client.get(f"/articles/{item.id}")

        assert response.status_code == 200
        assert response.json()["data"]["source_url"] == "https://x/y"

    def test_unknown_id_is_404(self, client):
        response = client.get("/articles/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"] == "Article not found"


class TestSummarize:
    def test_digest_is_cached_after_first_call(self, client, store, enricher):
        item = make_item("https://x/y", "Foo")
        store.insert_one(item)

        first = client.post(f"/articles/{item.id}/summarize").json()["data"]
        second = client.post(f"/articles/{item.id}/summarize").json()["data"]

        assert first["cached"] is False
        assert first["tokens"] == 42
        assert second["cached"] is True
        assert second["tokens"] == 0
        assert first["content_summary"] == second["content_summary"]
        assert enricher.elaborate_calls == ["Foo"]

    def test_unknown_id_is_404(self, client):
        assert client.post("/articles/nope/summarize").status_code == 404

    def test_enrichment_failure_is_500(self, settings, pipeline, store):
        pipeline.enricher = FakeEnricher(failing_titles={"Foo"})
        client = TestClient(create_app(settings, pipeline=pipeline), raise_server_exceptions=False)
        item = make_item("https://x/y", "Foo")
        store.insert_one(item)

        response = client.post(f"/articles/{item.id}/summarize")

        assert response.status_code == 500
        assert store.get_by_id(item.id).content_summary is None


class TestDeleteAll:
    def test_development_only(self, pipeline, store):
        seed(store, 2)
        prod = TestClient(create_app(Settings(app_env="production"), pipeline=pipeline))

        assert prod.delete("/articles/delete-all").status_code == 403
        assert len(store.rows) == 2

    def test_wipes_in_development(self, client, store):
        seed(store, 2)

        response = client.delete("/articles/delete-all")

        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert store.rows == {}


class TestRssFetch:
    def test_default_platform_without_body(self, client, store):
        response = client.post("/rss/fetch")

        assert response.status_code == 200
        assert response.json()["count"] == 3
        assert len(store.rows) == 3

    def test_invalid_platform_is_400(self, client, store):
        response = client.post("/rss/fetch", json={"platform": "desktop"})

        assert response.status_code == 400
        assert store.rows == {}

    def test_pipeline_failure_is_500(self, client, store):
        store.unavailable = True

        response = client.post("/rss/fetch", json={"platform": "android"})

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "unreachable" in response.json()["error"]


class TestCronFetch:
    def test_requires_bearer_secret_outside_development(self, pipeline):
        client = TestClient(create_app(Settings(app_env="production", cron_secret="s3cret"), pipeline=pipeline))

        assert client.get("/cron/fetch").status_code == 401
        assert client.get("/cron/fetch", headers={"Authorization": "Bearer wrong"}).status_code == 401

        response = client.get("/cron/fetch", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_rejects_when_no_secret_configured(self, pipeline):
        client = TestClient(create_app(Settings(app_env="production"), pipeline=pipeline))
        assert client.get("/cron/fetch", headers={"Authorization": "Bearer "}).status_code == 401

    def test_development_skips_auth(self, client):
        data = client.get("/cron/fetch").json()

        assert data["success"] is True
        assert data["count"] == 3
        assert isinstance(data["elapsedTime"], int)
        assert "timestamp" in data

    def test_failure_is_500(self, client, store):
        store.unavailable = True
        assert client.get("/cron/fetch").status_code == 500
