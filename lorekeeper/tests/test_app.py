import base64
import unittest

from fastapi.testclient import TestClient

from lorekeeper.app import create_app
from lorekeeper.articles import ArticleStore
from lorekeeper.categories import CategoryStore
from lorekeeper.config import Settings, get_settings
from lorekeeper.decks import DeckStore
from lorekeeper.dependencies import (
    get_article_store,
    get_category_store,
    get_deck_store,
)
from lorekeeper.storage import InMemoryBlobStore

SVG = base64.b64encode(b"<svg/>").decode()


class ApiTests(unittest.TestCase):
    def setUp(self):
        self.blobs = InMemoryBlobStore()
        self.app = create_app()
        overrides = self.app.dependency_overrides
        overrides[get_settings] = lambda: Settings(bearer_token=None)
        overrides[get_article_store] = lambda: ArticleStore(self.blobs, bcrypt_rounds=4)
        overrides[get_category_store] = lambda: CategoryStore(self.blobs)
        overrides[get_deck_store] = lambda: DeckStore(self.blobs)
        self.client = TestClient(self.app)

    def _create(self, title="Dragon", password="1234", **extra):
        return self.client.post(
            "/articles",
            json={"articleJSON": {"title": title, **extra}, "password": password},
        )

    def test_article_lifecycle(self):
        response = self._create(hp=30)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["version"], 1)

        response = self._create()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["status"], "conflict")

        response = self.client.put(
            "/articles/Dragon",
            json={"password": "1234", "articleJSON": {"title": "Dragon", "hp": 45}},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["version"], 2)

        response = self.client.put("/articles/Dragon", json={"password": "wrong"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["status"], "forbidden")

        response = self.client.get("/articles/Dragon")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"title": "Dragon", "hp": 45})

        response = self.client.request(
            "DELETE", "/articles/Dragon", json={"password": "1234"}
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.get("/articles/Dragon")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["status"], "not_found")

    def test_create_article_validation(self):
        response = self.client.post("/articles", json={"password": "1234"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["status"], "bad_request")

        response = self._create(password="12")
        self.assertEqual(response.status_code, 400)

    def test_numeric_password_is_accepted(self):
        response = self._create(password=123456)
        self.assertEqual(response.status_code, 201)
        response = self.client.put("/articles/Dragon", json={"password": 123456})
        self.assertEqual(response.status_code, 200)

    def test_legacy_article_needs_migration(self):
        self.blobs.put("Old.json", b'{"title": "Old"}', "application/json")
        response = self.client.put("/articles/Old", json={"password": "1234"})
        self.assertEqual(response.status_code, 412)
        self.assertEqual(response.json()["status"], "needs_migration")

    def test_list_articles(self):
        self.assertEqual(self.client.get("/articles").json(), [])
        self._create()
        response = self.client.get("/articles")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [{"id": "Dragon", "content": {"title": "Dragon"}}])

    def test_categories(self):
        response = self.client.post("/categories", json={"id": "c1", "name": "Monsters"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(
            self.client.get("/categories").json(), [{"id": "c1", "name": "Monsters"}]
        )
        self.assertEqual(self.client.get("/categories/c1").json()["name"], "Monsters")
        self.assertEqual(self.client.post("/categories", json={"id": "c2"}).status_code, 400)
        self.assertEqual(self.client.delete("/categories/c1").status_code, 200)
        self.assertEqual(self.client.get("/categories/c1").status_code, 404)

    def test_corrupt_category_is_internal_error(self):
        self.blobs.put("categories/bad.json", b"nope", "application/json")
        response = self.client.get("/categories")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["status"], "internal_error")

    def test_decks(self):
        response = self.client.post(
            "/cards", json={"title": "Elves", "cards": [{"name": "elf1", "svgBase64": SVG}]}
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["uploaded"], 1)

        self.assertEqual(
            self.client.get("/cards/Elves").json(), {"files": ["Elves/elf1.svg"]}
        )
        decks = self.client.get("/cards").json()
        self.assertEqual(decks[0]["title"], "Elves")
        self.assertEqual(decks[0]["cards"][0]["name"], "elf1")

        response = self.client.delete("/cards/Elves")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["deleted"], 1)

        self.assertEqual(self.client.delete("/cards/Elves").status_code, 404)
        self.assertEqual(self.client.delete("/cards").status_code, 404)

    def test_upload_deck_reports_bad_index(self):
        response = self.client.post(
            "/cards",
            json={"title": "Elves", "cards": [{"name": "elf1", "svgBase64": SVG}, {"name": "x"}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("index 1", response.json()["error"])
        self.assertEqual(self.client.post("/cards", json={"title": "Elves"}).status_code, 400)

    def test_bearer_token_required_when_configured(self):
        self.app.dependency_overrides[get_settings] = lambda: Settings(bearer_token="s3cret")
        self.assertEqual(self.client.get("/articles").status_code, 401)
        self.assertEqual(
            self.client.get("/articles", headers={"Authorization": "Bearer wrong"}).status_code,
            401,
        )
        response = self.client.get("/articles", headers={"Authorization": "Bearer s3cret"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/health").status_code, 200)


if __name__ == "__main__":
    unittest.main()
