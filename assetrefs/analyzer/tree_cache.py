"""Path-keyed cache of decoded scene/prefab trees.

Entries are built lazily on first read and dropped (not rebuilt) on
invalidation. Concurrent reads of the same path share a single decode.
"""
import json
import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, Iterable, MutableMapping, Optional, Tuple

from .cache import SnapshotCache
from .graph_decoder import GraphDecodeError, GraphDecoder, Tree

logger = logging.getLogger(__name__)


def read_text_file(path: str) -> str:
    """Default file-access collaborator."""
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


class TreeCache:
    """Memo of GraphDecoder output keyed by absolute file path."""

    def __init__(self, read_file: Callable[[str], str] = read_text_file,
                 decoder: Optional[GraphDecoder] = None,
                 store: Optional[MutableMapping[str, Tree]] = None,
                 snapshot: Optional[SnapshotCache] = None):
        """Initialize the cache.

        Args:
            read_file: Returns the raw text of a file; may raise OSError
            decoder: Decoder used to build trees (default settings if omitted)
            store: Backing mapping for live trees (a plain dict by default)
            snapshot: Optional persistent cache consulted before reading files
        """
        self.read_file = read_file
        self.decoder = decoder or GraphDecoder()
        self.store: MutableMapping[str, Tree] = store if store is not None else {}
        self.snapshot = snapshot

        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}
        # Bumped by invalidate() so a decode started earlier is not stored
        self._generations: Dict[str, int] = {}

    def get_tree(self, path: str) -> Optional[Tree]:
        """Return the tree for `path`, decoding it on first use.

        Args:
            path: Absolute path of a scene or prefab file

        Returns:
            The cached Tree instance, or None if the file can't be decoded
        """
        path = str(path)
        with self._lock:
            tree = self.store.get(path)
            if tree is not None:
                return tree
            future = self._in_flight.get(path)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[path] = future
                generation = self._generations.get(path, 0)

        if not owner:
            return future.result()

        # Taken before the read; a save during the load leaves the row stale
        cache_key = self.snapshot.get_cache_key(Path(path)) if self.snapshot is not None else None
        try:
            tree, restored = self._load(path)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(path, None)
            future.set_exception(exc)
            raise

        with self._lock:
            current = tree is not None and self._generations.get(path, 0) == generation
            if current:
                self.store[path] = tree
            self._in_flight.pop(path, None)
        future.set_result(tree)

        if current and not restored and cache_key is not None:
            try:
                self.snapshot.set_tree(Path(path), tree, cache_key)
            except RecursionError as e:
                logger.warning("Failed to persist node tree for %s: %s", path, e)
        return tree

    def invalidate(self, path: str):
        """Drop the entry for `path`. The next get_tree() rebuilds it."""
        path = str(path)
        with self._lock:
            self.store.pop(path, None)
            self._generations[path] = self._generations.get(path, 0) + 1
        if self.snapshot is not None:
            self.snapshot.invalidate_file(Path(path))
        logger.debug("Invalidated node tree for %s", path)

    def preload(self, paths: Iterable[str]) -> int:
        """Decode every path in advance.

        Returns:
            Number of trees now cached
        """
        loaded = 0
        for path in paths:
            if self.get_tree(path) is not None:
                loaded += 1
        return loaded

    def clear(self):
        with self._lock:
            for path in list(self.store.keys()):
                self._generations[path] = self._generations.get(path, 0) + 1
            self.store.clear()

    def __contains__(self, path) -> bool:
        return str(path) in self.store

    def __len__(self) -> int:
        return len(self.store)

    def _load(self, path: str) -> Tuple[Optional[Tree], bool]:
        """Read and decode a file, logging and returning None on failure.

        Returns:
            Tuple of (tree, restored_from_snapshot)
        """
        if self.snapshot is not None:
            tree = self.snapshot.get_tree(Path(path))
            if tree is not None:
                logger.debug("Node tree for %s restored from snapshot", path)
                return tree, True

        try:
            content = self.read_file(path)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            return None, False

        try:
            data = json.loads(content)
        except (json.JSONDecodeError, RecursionError) as e:
            logger.warning("Failed to parse %s: %s", path, e)
            return None, False

        try:
            tree = self.decoder.decode(data)
        except (GraphDecodeError, RecursionError) as e:
            logger.warning("Failed to build node tree for %s: %s", path, e)
            return None, False

        if tree is None:
            logger.warning("Unsupported asset type in %s, skipped", path)
        return tree, False
