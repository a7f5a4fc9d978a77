import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from firebase_admin import auth as firebase_auth

from backend.app import create_app
from backend.auth import FirebaseIdentityProvider, InMemoryIdentityProvider
from backend.config import Settings, get_settings
from backend.db import InMemoryDbClient
from backend.dependencies import (
    get_db_client,
    get_identity_provider,
    get_storage_client,
)
from backend.storage import InMemoryStorageClient


def _restaurant_doc(name, category, city, price, num_ratings=0, sum_rating=0.0):
    return {
        "name": name,
        "category": category,
        "city": city,
        "price": price,
        "numRatings": num_ratings,
        "sumRating": sum_rating,
        "avgRating": sum_rating / num_ratings if num_ratings else 0.0,
        "photo": "https://example.test/photo.png",
    }


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.provider = InMemoryIdentityProvider()
        self.settings = Settings(
            use_in_memory_backends=True,
            gemini_api_key=None,
            sample_restaurant_count=3,
            _env_file=None,
        )

        self.app = app = create_app()
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        app.dependency_overrides[get_identity_provider] = lambda: self.provider
        app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(app)

        self.sushi_id = self.db.add_restaurant(
            _restaurant_doc("Sushi Spot", "Sushi", "Tokyo", 3, 2, 9.0)
        )
        self.pizza_id = self.db.add_restaurant(
            _restaurant_doc("Pizza Place", "Italian", "Rome", 2, 5, 15.0)
        )
        self.taco_id = self.db.add_restaurant(
            _restaurant_doc("Taco Truck", "Mexican", "Tokyo", 1)
        )

    def _sign_in(self, uid="alice", **claims):
        token = self.provider.issue_token(uid, **claims)
        self.client.cookies.set("__session", token)
        return token

    def test_list_restaurants_sorted_by_rating(self):
        response = self.client.get("/api/restaurants")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(
            [r["name"] for r in payload["restaurants"]],
            ["Sushi Spot", "Pizza Place", "Taco Truck"],
        )
        self.assertFalse(payload["header"]["signed_in"])
        self.assertEqual(payload["header"]["photo_url"], "/profile.svg")

    def test_list_restaurants_with_filters(self):
        response = self.client.get(
            "/api/restaurants", params={"city": "Tokyo", "sort": "Review"}
        )
        payload = response.json()
        self.assertEqual(
            [r["name"] for r in payload["restaurants"]], ["Sushi Spot", "Taco Truck"]
        )
        self.assertEqual(payload["filters"]["city"], "Tokyo")

        response = self.client.get("/api/restaurants", params={"price": "$$"})
        restaurants = response.json()["restaurants"]
        self.assertEqual([r["name"] for r in restaurants], ["Pizza Place"])
        self.assertEqual(restaurants[0]["price_label"], "$$")

    def test_restaurant_detail_anonymous(self):
        response = self.client.get(f"/api/restaurants/{self.sushi_id}")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["restaurant"]["name"], "Sushi Spot")
        self.assertEqual(payload["reviews"], [])
        self.assertIsNone(payload["user_id"])
        self.assertIsNone(payload["review_dialog"])

    def test_restaurant_detail_signed_in(self):
        self._sign_in("alice", name="Alice", picture="https://p/alice.png")
        payload = self.client.get(f"/api/restaurants/{self.sushi_id}").json()
        self.assertEqual(payload["user_id"], "alice")
        self.assertEqual(
            payload["review_dialog"],
            {"restaurant_id": self.sushi_id, "user_id": "alice", "rating": 0, "text": ""},
        )
        self.assertEqual(payload["header"]["display_name"], "Alice")
        self.assertEqual(payload["header"]["photo_url"], "https://p/alice.png")

    def test_unknown_restaurant_is_404(self):
        self.assertEqual(self.client.get("/api/restaurants/missing").status_code, 404)
        self.assertEqual(
            self.client.get("/api/restaurants/missing/events").status_code, 404
        )

    def test_submit_review_requires_session(self):
        response = self.client.post(
            f"/api/restaurants/{self.taco_id}/reviews", data={"rating": 4, "text": "Yum"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.db.get_reviews_by_restaurant_id(self.taco_id), [])

    def test_submit_reviews_updates_aggregate(self):
        self._sign_in("alice")
        for rating, text in ((4, "Good tacos"), (2, "Too spicy")):
            response = self.client.post(
                f"/api/restaurants/{self.taco_id}/reviews",
                data={"rating": rating, "text": text},
            )
            self.assertEqual(response.status_code, 201)

        restaurant = response.json()["restaurant"]
        self.assertEqual(response.json()["status"], "ok")
        self.assertEqual(restaurant["num_ratings"], 2)
        self.assertEqual(restaurant["sum_rating"], 6)
        self.assertEqual(restaurant["avg_rating"], 3)

        reviews = self.client.get(f"/api/restaurants/{self.taco_id}").json()["reviews"]
        self.assertEqual([r["text"] for r in reviews], ["Too spicy", "Good tacos"])
        self.assertEqual({r["user_id"] for r in reviews}, {"alice"})

    def test_submit_review_validation(self):
        self._sign_in("alice")
        url = f"/api/restaurants/{self.taco_id}/reviews"
        self.assertEqual(
            self.client.post(url, data={"rating": 7, "text": "x"}).status_code, 422
        )
        self.assertEqual(
            self.client.post(url, data={"rating": 3, "text": ""}).status_code, 422
        )
        response = self.client.post(
            "/api/restaurants/missing/reviews", data={"rating": 3, "text": "x"}
        )
        self.assertEqual(response.status_code, 404)

    def test_upload_image(self):
        self._sign_in("alice")
        response = self.client.post(
            f"/api/restaurants/{self.pizza_id}/image",
            files={"file": ("front.png", b"png-bytes", "image/png")},
        )
        self.assertEqual(response.status_code, 200)
        url = response.json()["url"]
        self.assertIn(f"images/{self.pizza_id}/front.png", url)
        self.assertEqual(self.db.get_restaurant_by_id(self.pizza_id).photo, url)
        self.assertEqual(
            self.storage.get_bytes(f"images/{self.pizza_id}/front.png"), b"png-bytes"
        )

    def test_upload_image_requires_session(self):
        response = self.client.post(
            f"/api/restaurants/{self.pizza_id}/image",
            files={"file": ("front.png", b"png-bytes", "image/png")},
        )
        self.assertEqual(response.status_code, 401)

    def test_summary_without_api_key(self):
        response = self.client.get(f"/api/restaurants/{self.sushi_id}/summary")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "restaurant_id": self.sushi_id,
                "text": "Error summarizing reviews.",
                "ok": False,
                "attribution": None,
            },
        )

    @patch("backend.summaries.gemini.call_predict")
    def test_summary_with_api_key(self, call_predict):
        self.settings.gemini_api_key = "key"
        call_predict.return_value = "Fresh fish, friendly staff."

        payload = self.client.get(f"/api/restaurants/{self.sushi_id}/summary").json()

        self.assertTrue(payload["ok"])
        self.assertEqual(payload["text"], "Fresh fish, friendly staff.")
        self.assertEqual(payload["attribution"], "✨ Summarized with Gemini")

    def test_sign_in_sets_session_cookie(self):
        token = self.provider.issue_token("bob", name="Bob")

        response = self.client.post("/api/session", json={"id_token": token})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["refresh_required"])
        self.assertEqual(payload["header"]["uid"], "bob")
        self.assertIn(f"__session={token}", response.headers["set-cookie"])
        self.assertIn("HttpOnly", response.headers["set-cookie"])

        session = self.client.get("/api/session").json()
        self.assertTrue(session["header"]["signed_in"])

    def test_sign_in_with_invalid_token(self):
        response = self.client.post("/api/session", json={"id_token": "forged"})
        self.assertEqual(response.status_code, 401)
        self.assertNotIn("set-cookie", response.headers)

        response = self.client.post("/api/session", json={"id_token": ""})
        self.assertEqual(response.status_code, 422)

    def test_token_refresh_for_same_user_needs_no_refresh(self):
        self._sign_in("alice")
        fresh = self.provider.issue_token("alice")
        payload = self.client.post("/api/session", json={"id_token": fresh}).json()
        self.assertFalse(payload["refresh_required"])

    def test_sign_out_clears_cookie(self):
        self._sign_in("alice")

        response = self.client.delete("/api/session")

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["refresh_required"])
        self.assertFalse(response.json()["header"]["signed_in"])
        self.assertIn("Max-Age=0", response.headers["set-cookie"])

    def test_bogus_cookie_is_anonymous(self):
        self.client.cookies.set("__session", "forged")
        payload = self.client.get("/api/session").json()
        self.assertFalse(payload["header"]["signed_in"])

    def test_unreachable_identity_provider_serves_anonymous_reads(self):
        self.app.dependency_overrides[get_identity_provider] = (
            lambda: FirebaseIdentityProvider()
        )
        self.client.cookies.set("__session", "tok")
        error = firebase_auth.CertificateFetchError("keys unavailable", None)

        with patch("backend.auth.firebase_auth.verify_id_token", side_effect=error):
            with self.assertLogs("backend.auth", level="ERROR"):
                response = self.client.get("/api/restaurants")
            self.assertEqual(response.status_code, 200)
            self.assertFalse(response.json()["header"]["signed_in"])

            with self.assertLogs("backend.auth", level="ERROR"):
                response = self.client.post("/api/session", json={"id_token": "tok"})
            self.assertEqual(response.status_code, 502)

    def test_add_sample_data(self):
        self.assertEqual(self.client.post("/api/restaurants/sample").status_code, 401)

        self._sign_in("alice")
        response = self.client.post("/api/restaurants/sample")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()["restaurant_ids"]), 3)
        self.assertEqual(len(self.db.get_restaurants()), 6)


if __name__ == "__main__":
    unittest.main()
