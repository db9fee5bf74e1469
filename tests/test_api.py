import unittest

from fastapi.testclient import TestClient

from atmowise.cache_presets import LOCATIONS
from atmowise.data_sources.base import CallableReadingSource
from atmowise.data_sources.geocoding import LocationNotFound
from atmowise.domain import GeocodedLocation, PollutantReading
from atmowise.main import app as fastapi_app
from atmowise.risk_classifier import RATIONALE_CAUTION_ASTHMA


class FakeGuidanceClient:
    def __init__(self, reply):
        self.reply = reply
        self.calls = 0

    def chat(self, messages):
        self.calls += 1
        return self.reply


class StaticGeocoder:
    def __init__(self, location=None, error=None):
        self.location = location
        self.error = error
        self.calls = 0

    def geocode(self, query):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.location


def _raise(lat, lon):
    raise RuntimeError("upstream exploded")


class TestApi(unittest.TestCase):
    def setUp(self):
        from atmowise.config import settings

        self._orig_api_key = settings.api_key
        self._orig_max_note = settings.max_note_chars
        settings.api_key = None
        self._client_cm = TestClient(fastapi_app)
        self.client = self._client_cm.__enter__()
        self.state = self.client.app.state
        self.state.guidance_client = None

    def tearDown(self):
        from atmowise.config import settings

        self._client_cm.__exit__(None, None, None)
        settings.api_key = self._orig_api_key
        settings.max_note_chars = self._orig_max_note

    def test_app_metadata(self):
        self.assertEqual(fastapi_app.title, "AtmoWise")

    def test_health(self):
        resp = self.client.get("/v1/health")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["cache_persistence"], "InMemoryCachePersistence")
        self.assertTrue(data["flusher_running"])

    def test_air_miss_then_cached_hit(self):
        self.state.service.reading_source = CallableReadingSource(lambda lat, lon: PollutantReading(aqi=75))
        first = self.client.get("/v1/air", params={"lat": 40.7128, "lon": -74.006})
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertEqual(body["assessment"]["tier"], 2)
        self.assertEqual(body["assessment"]["status"], "moderate")
        self.assertFalse(body["cached"])
        self.assertEqual(body["key"], "40.7128,-74.0060|anonymous")

        second = self.client.get("/v1/air", params={"lat": 40.7128, "lon": -74.006})
        self.assertTrue(second.json()["cached"])

        refreshed = self.client.get("/v1/air", params={"lat": 40.7128, "lon": -74.006, "refresh": "true"})
        self.assertFalse(refreshed.json()["cached"])

    def test_air_uses_stored_profile(self):
        self.state.service.reading_source = CallableReadingSource(lambda lat, lon: PollutantReading(pm25=40))
        put = self.client.put("/v1/profile/u1", json={"asthma": True, "ageGroup": "senior"})
        self.assertEqual(put.status_code, 200)
        self.assertEqual(put.json()["age_group"], "elderly")

        resp = self.client.get("/v1/air", params={"lat": 10, "lon": 10, "user_id": "u1"})
        assessment = resp.json()["assessment"]
        self.assertEqual(assessment["tier"], 4)
        self.assertEqual(assessment["rationale"], RATIONALE_CAUTION_ASTHMA)

        self.assertEqual(self.client.get("/v1/profile/u1").json()["asthma"], True)

    def test_profile_errors(self):
        self.assertEqual(self.client.get("/v1/profile/ghost").status_code, 404)
        self.assertEqual(self.client.put("/v1/profile/u1", json={"age_group": "martian"}).status_code, 400)

    def test_air_rejects_bad_coordinates(self):
        resp = self.client.get("/v1/air", params={"lat": 100, "lon": 0})
        self.assertEqual(resp.status_code, 400)

    def test_air_source_failure_is_503(self):
        self.state.service.reading_source = CallableReadingSource(_raise)
        resp = self.client.get("/v1/air", params={"lat": 1, "lon": 1})
        self.assertEqual(resp.status_code, 503)

    def test_default_source_falls_back_to_demo(self):
        resp = self.client.get("/v1/air", params={"lat": 51.5, "lon": -0.12})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["reading"]["source"], "demo")

    def test_history_unavailable_for_live_sources(self):
        resp = self.client.get("/v1/air/history", params={"lat": 1, "lon": 1})
        self.assertEqual(resp.status_code, 404)

    def test_search_returns_location_and_air_quality(self):
        self.state.service.reading_source = CallableReadingSource(lambda lat, lon: PollutantReading(aqi=75))
        geocoder = StaticGeocoder(GeocodedLocation(latitude=40.7128, longitude=-74.006, label="New York, NY"))
        self.state.service.geocoder = geocoder

        resp = self.client.get("/v1/air/search", params={"q": "New York"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["query"], "New York")
        self.assertEqual(body["location"]["label"], "New York, NY")
        self.assertEqual(body["air_quality"]["key"], "40.7128,-74.0060|anonymous")
        self.assertEqual(body["air_quality"]["assessment"]["status"], "moderate")

        self.client.get("/v1/air/search", params={"q": "new york"})
        self.assertEqual(geocoder.calls, 1)
        self.assertEqual(self.client.get("/v1/cache/stats").json()[LOCATIONS]["size"], 1)

    def test_search_errors(self):
        self.state.service.geocoder = StaticGeocoder(error=LocationNotFound("Location not found: Atlantis"))
        self.assertEqual(self.client.get("/v1/air/search", params={"q": "Atlantis"}).status_code, 404)
        self.assertEqual(self.client.get("/v1/air/search", params={"q": "  "}).status_code, 400)
        self.assertEqual(self.client.get("/v1/air/search").status_code, 422)

        self.state.service.geocoder = StaticGeocoder(error=RuntimeError("boom"))
        self.assertEqual(self.client.get("/v1/air/search", params={"q": "Paris"}).status_code, 503)

    def test_risk_with_inline_profile(self):
        resp = self.client.post("/v1/risk", json={"reading": {"pm25": 40}, "profile": {"asthma": True}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["tier"], 4)

    def test_risk_with_stored_profile_and_unknown_reading(self):
        self.client.put("/v1/profile/u2", json={"pregnant": True})
        resp = self.client.post("/v1/risk", json={"reading": {"aqi": 75}, "user_id": "u2"})
        self.assertEqual(resp.json()["tier"], 3)

        unknown = self.client.post("/v1/risk", json={"reading": {}})
        self.assertEqual(unknown.json()["status"], "unknown")
        self.assertIsNone(unknown.json()["tier"])

    def test_cache_stats_and_clear(self):
        self.client.get("/v1/air", params={"lat": 1, "lon": 1})
        stats = self.client.get("/v1/cache/stats").json()
        self.assertEqual(stats["air-quality"]["size"], 1)
        self.assertEqual(stats["air-quality"]["max_size"], 50)
        self.assertIn("user-data", stats)

        cleared = self.client.delete("/v1/cache/air-quality")
        self.assertEqual(cleared.status_code, 200)
        self.assertEqual(self.client.get("/v1/cache/stats").json()["air-quality"]["size"], 0)
        self.assertEqual(self.client.delete("/v1/cache/bogus").status_code, 404)

    def test_guidance_emergency(self):
        fake = FakeGuidanceClient('{"summary": "s", "action": "a", "severity": "low"}')
        self.state.guidance_client = fake
        resp = self.client.post("/v1/guidance", json={"note": "chest pain after running"})
        data = resp.json()
        self.assertTrue(data["emergency"])
        self.assertEqual(data["severity"], "high")
        self.assertEqual(fake.calls, 0)

    def test_guidance_uses_model_with_location(self):
        fake = FakeGuidanceClient('{"summary": "Mild.", "action": "Rest.", "severity": "low"}')
        self.state.guidance_client = fake
        resp = self.client.post("/v1/guidance", json={"note": "scratchy throat", "lat": 1, "lon": 1})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["source"], "llm")
        self.assertEqual(fake.calls, 1)

    def test_guidance_fallback_without_model(self):
        resp = self.client.post("/v1/guidance", json={"note": "cough", "symptom_severity": 5})
        self.assertEqual(resp.json()["severity"], "high")
        self.assertEqual(resp.json()["source"], "fallback")

    def test_guidance_validates_note(self):
        from atmowise.config import settings

        self.assertEqual(self.client.post("/v1/guidance", json={"note": "   "}).status_code, 400)
        settings.max_note_chars = 5
        self.assertEqual(self.client.post("/v1/guidance", json={"note": "toolong"}).status_code, 400)

    def test_requires_api_key_when_set(self):
        from atmowise.config import settings

        settings.api_key = "sekret"
        self.assertEqual(self.client.get("/v1/health").status_code, 401)
        self.assertEqual(self.client.get("/v1/health", headers={"X-API-Key": "wrong"}).status_code, 401)
        self.assertEqual(self.client.get("/v1/health", headers={"X-API-Key": "sekret"}).status_code, 200)


if __name__ == "__main__":
    unittest.main()
