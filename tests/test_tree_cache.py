"""Tests for the path-keyed node tree cache."""

import json
import logging
import threading
import time

import pytest

from assetrefs.analyzer.cache import SnapshotCache
from assetrefs.analyzer.tree_cache import TreeCache


def scene_json(*names):
    """A scene whose root has one childless top-level node per name."""
    graph = [
        {"__type__": "cc.SceneAsset", "scene": {"__id__": 1}},
        {"__type__": "cc.Scene", "_children": [{"__id__": i + 2} for i in range(len(names))]},
    ]
    graph.extend({"__type__": "cc.Node", "_name": name} for name in names)
    return json.dumps(graph)


class CountingReader:
    """In-memory file access that counts reads per path."""

    def __init__(self, files):
        self.files = dict(files)
        self.reads = {}

    def __call__(self, path):
        self.reads[path] = self.reads.get(path, 0) + 1
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]


@pytest.fixture
def reader():
    return CountingReader({"/p/main.fire": scene_json("Canvas")})


class TestGetTree:
    """get_tree() decodes lazily and returns the cached instance afterwards."""

    def test_returns_identical_instance(self, reader):
        cache = TreeCache(read_file=reader)
        first = cache.get_tree("/p/main.fire")
        second = cache.get_tree("/p/main.fire")

        assert first is second
        assert first.nodes[0].name == "Canvas"
        assert reader.reads["/p/main.fire"] == 1

    def test_uses_injected_store(self, reader):
        store = {}
        cache = TreeCache(read_file=reader, store=store)
        tree = cache.get_tree("/p/main.fire")
        assert store == {"/p/main.fire": tree}
        assert "/p/main.fire" in cache
        assert len(cache) == 1

    def test_malformed_json_warns_and_is_not_cached(self, caplog):
        reader = CountingReader({"/p/bad.fire": "[{not json"})
        cache = TreeCache(read_file=reader)

        with caplog.at_level(logging.WARNING):
            assert cache.get_tree("/p/bad.fire") is None
        assert "Failed to parse /p/bad.fire" in caplog.text

        cache.get_tree("/p/bad.fire")
        assert reader.reads["/p/bad.fire"] == 2, "failures must not be cached"

    def test_structural_failure_warns(self, caplog):
        graph = json.dumps([{"__type__": "cc.SceneAsset", "scene": {"__id__": 7}}])
        cache = TreeCache(read_file=CountingReader({"/p/broken.fire": graph}))

        with caplog.at_level(logging.WARNING):
            assert cache.get_tree("/p/broken.fire") is None
        assert "Failed to build node tree" in caplog.text
        assert "/p/broken.fire" not in cache

    def test_unsupported_descriptor_warns(self, caplog):
        cache = TreeCache(read_file=CountingReader({"/p/x.prefab": json.dumps([{"__type__": "cc.Mystery"}])}))
        with caplog.at_level(logging.WARNING):
            assert cache.get_tree("/p/x.prefab") is None
        assert "Unsupported asset type" in caplog.text

    def test_read_error_warns(self, caplog):
        cache = TreeCache(read_file=CountingReader({}))
        with caplog.at_level(logging.WARNING):
            assert cache.get_tree("/p/missing.fire") is None
        assert "Failed to read /p/missing.fire" in caplog.text


class TestInvalidate:
    """invalidate() drops entries; the next read re-decodes current content."""

    def test_rebuilds_from_current_content(self, reader):
        cache = TreeCache(read_file=reader)
        old = cache.get_tree("/p/main.fire")

        reader.files["/p/main.fire"] = scene_json("Canvas", "Overlay")
        cache.invalidate("/p/main.fire")
        assert "/p/main.fire" not in cache
        assert reader.reads["/p/main.fire"] == 1, "invalidate must not rebuild eagerly"

        new = cache.get_tree("/p/main.fire")
        assert new is not old
        assert [n.name for n in new.nodes] == ["Canvas", "Overlay"]

    def test_unknown_path_is_a_no_op(self, reader):
        cache = TreeCache(read_file=reader)
        cache.invalidate("/p/never-loaded.fire")
        cache.invalidate("/p/never-loaded.fire")
        assert len(cache) == 0

    def test_preload(self, reader):
        reader.files["/p/other.prefab"] = "not json"
        cache = TreeCache(read_file=reader)
        assert cache.preload(["/p/main.fire", "/p/other.prefab"]) == 1
        assert "/p/main.fire" in cache


class SlowReader(CountingReader):
    """Reader that blocks until released, to overlap concurrent loads."""

    def __init__(self, files):
        super().__init__(files)
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, path):
        self.started.set()
        assert self.release.wait(timeout=5)
        return super().__call__(path)


class TestSingleFlight:
    """Concurrent loads of one path share a single decode."""

    def test_concurrent_callers_share_one_decode(self):
        reader = SlowReader({"/p/main.fire": scene_json("Canvas")})
        cache = TreeCache(read_file=reader)
        results = []

        threads = [threading.Thread(target=lambda: results.append(cache.get_tree("/p/main.fire")))
                   for _ in range(4)]
        for thread in threads:
            thread.start()
        assert reader.started.wait(timeout=5)
        # Give the other callers time to find the in-flight load
        time.sleep(0.1)
        reader.release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert reader.reads["/p/main.fire"] == 1
        assert len(results) == 4
        assert all(tree is results[0] for tree in results)

    def test_invalidate_during_load_discards_stale_result(self):
        reader = SlowReader({"/p/main.fire": scene_json("Old")})
        cache = TreeCache(read_file=reader)
        results = []

        thread = threading.Thread(target=lambda: results.append(cache.get_tree("/p/main.fire")))
        thread.start()
        assert reader.started.wait(timeout=5)
        cache.invalidate("/p/main.fire")
        reader.release.set()
        thread.join(timeout=5)

        assert results[0].nodes[0].name == "Old"
        assert "/p/main.fire" not in cache, "a load overtaken by invalidate must not be stored"


class TestSnapshotLayer:
    """Decoded trees persist in the SQLite snapshot between cache instances."""

    def test_second_cache_skips_reading(self, tmp_path):
        scene = tmp_path / "main.fire"
        scene.write_text(scene_json("Canvas"), encoding="utf-8")
        path = str(scene)

        with SnapshotCache(tmp_path) as snapshot:
            first_reader = CountingReader({path: scene.read_text(encoding="utf-8")})
            TreeCache(read_file=first_reader, snapshot=snapshot).get_tree(path)
            assert snapshot.is_file_cached(scene)

            second_reader = CountingReader({})
            tree = TreeCache(read_file=second_reader, snapshot=snapshot).get_tree(path)

        assert tree.nodes[0].name == "Canvas"
        assert second_reader.reads == {}

    def test_invalidate_clears_snapshot_row(self, tmp_path):
        scene = tmp_path / "main.fire"
        scene.write_text(scene_json("Canvas"), encoding="utf-8")
        path = str(scene)

        with SnapshotCache(tmp_path) as snapshot:
            cache = TreeCache(read_file=CountingReader({path: scene_json("Canvas")}), snapshot=snapshot)
            cache.get_tree(path)
            cache.invalidate(path)
            assert not snapshot.is_file_cached(scene)


class ExplodingDecoder:
    """Decoder that fails the way unbounded recursion does."""

    def decode(self, data):
        raise RecursionError("maximum recursion depth exceeded")


class TestRecursionLimits:
    """Nesting too deep for the interpreter is a per-file warning."""

    def test_decoder_recursion_error_warns(self, reader, caplog):
        cache = TreeCache(read_file=reader, decoder=ExplodingDecoder())
        with caplog.at_level(logging.WARNING):
            assert cache.get_tree("/p/main.fire") is None
        assert "Failed to build node tree for /p/main.fire" in caplog.text
        assert "/p/main.fire" not in cache

    def test_too_deep_to_parse_is_not_fatal(self):
        depth = 5000
        content = '[{"__type__": "cc.SceneAsset", "x": ' + "[" * depth + "]" * depth + "}]"
        cache = TreeCache(read_file=CountingReader({"/p/deep.fire": content}))
        # Rejected by the parser or, where it copes, by the decoder
        assert cache.get_tree("/p/deep.fire") is None


class TestSnapshotKeyTiming:
    """The snapshot row describes the file as it was read."""

    def test_save_during_load_leaves_snapshot_stale(self, tmp_path):
        scene = tmp_path / "main.fire"
        scene.write_text(scene_json("Old"), encoding="utf-8")
        path = str(scene)

        def read_then_save(p):
            content = scene.read_text(encoding="utf-8")
            scene.write_text(scene_json("Old", "Newly", "Saved"), encoding="utf-8")
            return content

        with SnapshotCache(tmp_path) as snapshot:
            first = TreeCache(read_file=read_then_save, snapshot=snapshot).get_tree(path)
            assert [n.name for n in first.nodes] == ["Old"]
            assert not snapshot.is_file_cached(scene)

            second = TreeCache(snapshot=snapshot).get_tree(path)
        assert [n.name for n in second.nodes] == ["Old", "Newly", "Saved"]
