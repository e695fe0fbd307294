import json
import os
import shutil
import tempfile
import threading

import pytest

from discobot.infrastructure.storage import InMemoryCacheStore, JsonCacheStore


class TestInMemoryCacheStore:
    """Tests for InMemoryCacheStore."""

    def test_initial_contents_are_deduplicated(self):
        store = InMemoryCacheStore(artists=["a1", "a1", None], releases=["r1"])

        assert store.get_cached_artist_ids() == ["a1"]
        assert store.get_cached_release_ids() == ["r1"]
        assert store.get_cached_release_names() == []

    def test_returned_lists_are_copies(self):
        store = InMemoryCacheStore(artists=["a1"])

        store.get_cached_artist_ids().append("a2")

        assert store.get_cached_artist_ids() == ["a1"]


class TestJsonCacheStore:
    """Tests for JsonCacheStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.temp_dir, 'state', 'cache.json')

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_file_is_empty(self):
        store = JsonCacheStore(self.path)

        assert store.get_cached_artist_ids() == []
        assert not os.path.exists(self.path)

    def test_appends_are_persisted(self):
        store = JsonCacheStore(self.path)
        store.append_cached_artist_ids(["a1", "a2"])
        store.append_cached_release_ids(["r1"])
        store.append_cached_release_names(["night drive::a1"])

        reopened = JsonCacheStore(self.path)

        assert reopened.get_cached_artist_ids() == ["a1", "a2"]
        assert reopened.get_cached_release_ids() == ["r1"]
        assert reopened.get_cached_release_names() == ["night drive::a1"]
        with open(self.path) as f:
            assert json.load(f) == {"artists": ["a1", "a2"], "releases": ["r1"], "names": ["night drive::a1"]}

    def test_append_only_unique(self):
        store = JsonCacheStore(self.path)
        store.append_cached_release_ids(["r1", "r2"])
        store.append_cached_release_ids(["r2", "r3", "r3"])

        assert store.get_cached_release_ids() == ["r1", "r2", "r3"]

    def test_no_temporary_files_left_behind(self):
        store = JsonCacheStore(self.path)
        store.append_cached_release_ids(["r1"])

        assert os.listdir(os.path.dirname(self.path)) == ['cache.json']

    def test_corrupt_file_raises(self):
        os.makedirs(os.path.dirname(self.path))
        with open(self.path, 'w') as f:
            f.write('{broken')

        with pytest.raises(json.JSONDecodeError):
            JsonCacheStore(self.path).get_cached_release_ids()

    def test_concurrent_appends(self):
        store = JsonCacheStore(self.path)
        threads = [
            threading.Thread(target=store.append_cached_release_ids, args=([f"r{i}"],))
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(JsonCacheStore(self.path).get_cached_release_ids()) == sorted(f"r{i}" for i in range(20))
