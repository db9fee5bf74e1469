import json
import unittest

from atmowise.cache_store.redis import RedisCachePersistence


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expires = {}

    def set(self, key, value):
        self.store[key] = value
        self.expires.pop(key, None)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.expires[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)
        self.expires.pop(key, None)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in list(self.store.keys()) if k.startswith(prefix)]


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ConnectionError("redis down")

        return fail


class TestRedisCachePersistence(unittest.TestCase):
    def setUp(self):
        self.client = FakeRedis()
        self.store = RedisCachePersistence(self.client, prefix="test-")

    def test_save_uses_prefixed_key_and_ttl(self):
        pairs = [("a", {"payload": 1, "created_at": 1.0})]
        self.assertTrue(self.store.save("air-quality", pairs, ttl_seconds=300))
        self.assertIn("test-air-quality", self.client.store)
        self.assertEqual(self.client.expires["test-air-quality"], 300)
        self.assertEqual(self.store.load("air-quality"), pairs)

    def test_save_without_ttl_uses_plain_set(self):
        self.store.save("ns", [])
        self.assertIn("test-ns", self.client.store)
        self.assertNotIn("test-ns", self.client.expires)

    def test_stored_value_is_versioned_json(self):
        self.store.save("ns", [("a", {"payload": "x", "created_at": 2.0})])
        envelope = json.loads(self.client.store["test-ns"])
        self.assertEqual(envelope["version"], 1)
        self.assertEqual(envelope["entries"], [["a", {"payload": "x", "created_at": 2.0}]])
        self.assertIn("saved_at", envelope)

    def test_load_missing_returns_none(self):
        self.assertIsNone(self.store.load("missing"))

    def test_corrupt_payload_returns_none(self):
        self.client.store["test-ns"] = b"{not json"
        self.assertIsNone(self.store.load("ns"))

    def test_version_mismatch_returns_none(self):
        self.client.store["test-ns"] = json.dumps({"version": 99, "entries": []}).encode()
        self.assertIsNone(self.store.load("ns"))

    def test_delete_and_clear(self):
        self.store.save("a", [])
        self.store.save("b", [])
        self.client.store["other-key"] = b"keep"
        self.store.delete("a")
        self.assertNotIn("test-a", self.client.store)
        self.store.clear()
        self.assertEqual(list(self.client.store), ["other-key"])

    def test_errors_are_logged_not_raised(self):
        store = RedisCachePersistence(BrokenRedis(), prefix="test-")
        self.assertFalse(store.save("ns", [], ttl_seconds=10))
        self.assertIsNone(store.load("ns"))
        store.delete("ns")
        store.clear()


if __name__ == "__main__":
    unittest.main()
