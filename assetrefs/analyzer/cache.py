"""Snapshot cache for decoded node trees.

Decoding a large scene is the slow part of a reference scan, so decoded trees
are persisted between runs.

Cache Strategy:
- Store the decoded Tree (as JSON) per scene/prefab file
- Use file mtime + size as cache key
- If file unchanged, skip reading and decoding entirely

Cache Format: SQLite database
Location: .assetrefs_cache/ in project root
"""

import json
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple

from .graph_decoder import Tree


class SnapshotCache:
    """SQLite-backed store of decoded trees, validated by mtime and size."""

    def __init__(self, project_root: Path, cache_dir_name: str = '.assetrefs_cache'):
        """Initialize cache database.

        Args:
            project_root: Root directory of the content project
            cache_dir_name: Directory (relative to the project root) holding the database
        """
        self.project_root = Path(project_root)
        self.cache_dir = self.project_root / cache_dir_name
        self.cache_file = self.cache_dir / 'trees.db'

        self.cache_dir.mkdir(parents=True, exist_ok=True)

        # Shared by the scan thread and any thread collapsing onto a TreeCache load
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(str(self.cache_file), check_same_thread=False)
        self._init_database()

    def _init_database(self):
        """Create cache tables if they don't exist."""
        cursor = self.conn.cursor()

        # Table for file metadata (cache keys)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS file_metadata (
                file_path TEXT PRIMARY KEY,
                mtime REAL NOT NULL,
                size INTEGER NOT NULL,
                cache_key TEXT NOT NULL
            )
        ''')

        # Table for decoded trees (serialized as JSON)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS node_trees (
                file_path TEXT PRIMARY KEY,
                tree_data TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                FOREIGN KEY (file_path) REFERENCES file_metadata(file_path)
            )
        ''')

        self.conn.commit()

    def get_cache_key(self, file_path: Path) -> Optional[Tuple[float, int, str]]:
        """Generate cache key from file mtime and size.

        Returns:
            Tuple of (mtime, size, key) or None if the file doesn't exist
        """
        try:
            stat = Path(file_path).stat()
        except OSError:
            return None
        return (stat.st_mtime, stat.st_size, f"{stat.st_mtime}:{stat.st_size}")

    def is_file_cached(self, file_path: Path) -> bool:
        """Check if a tree for this file is cached and still valid."""
        key_data = self.get_cache_key(file_path)
        if key_data is None:
            return False
        mtime, size, _ = key_data

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('''
                SELECT mtime, size FROM file_metadata
                WHERE file_path = ?
            ''', (str(file_path),))
            result = cursor.fetchone()

        if not result:
            return False
        cached_mtime, cached_size = result
        return cached_mtime == mtime and cached_size == size

    def get_tree(self, file_path: Path) -> Optional[Tree]:
        """Get the cached tree for a file.

        Returns:
            Tree, or None if missing, stale or unreadable
        """
        if not self.is_file_cached(file_path):
            return None

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('''
                SELECT tree_data FROM node_trees
                WHERE file_path = ?
            ''', (str(file_path),))
            result = cursor.fetchone()

        if not result:
            return None
        try:
            return Tree.from_dict(json.loads(result[0]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            return None

    def set_tree(self, file_path: Path, tree: Tree,
                 key_data: Optional[Tuple[float, int, str]] = None):
        """Cache the decoded tree of a file.

        Args:
            file_path: Source file of the tree
            tree: Decoded tree
            key_data: Key of the file as it was read (current stat if omitted)
        """
        if key_data is None:
            key_data = self.get_cache_key(file_path)
        if not key_data:
            return
        mtime, size, cache_key = key_data
        tree_data = json.dumps(tree.to_dict())

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO file_metadata (file_path, mtime, size, cache_key)
                VALUES (?, ?, ?, ?)
            ''', (str(file_path), mtime, size, cache_key))
            cursor.execute('''
                INSERT OR REPLACE INTO node_trees (file_path, tree_data, cache_key)
                VALUES (?, ?, ?)
            ''', (str(file_path), tree_data, cache_key))
            self.conn.commit()

    def invalidate_file(self, file_path: Path):
        """Invalidate cache for a specific file."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('DELETE FROM node_trees WHERE file_path = ?', (str(file_path),))
            cursor.execute('DELETE FROM file_metadata WHERE file_path = ?', (str(file_path),))
            self.conn.commit()

    def clear_cache(self):
        """Clear all cached data."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('DELETE FROM node_trees')
            cursor.execute('DELETE FROM file_metadata')
            self.conn.commit()

    def get_cache_stats(self) -> Dict[str, int]:
        """Get cache statistics."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute('SELECT COUNT(*) FROM file_metadata')
            total_files = cursor.fetchone()[0]
            cursor.execute('SELECT COUNT(*) FROM node_trees')
            trees_cached = cursor.fetchone()[0]
            cursor.execute('SELECT COALESCE(SUM(LENGTH(tree_data)), 0) FROM node_trees')
            total_bytes = cursor.fetchone()[0]

        return {
            'total_files': total_files,
            'trees_cached': trees_cached,
            'tree_bytes': total_bytes,
        }

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
