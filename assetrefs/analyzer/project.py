"""One content project: asset database, tree cache and reference finder wired together."""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .asset_db import AssetDatabase, AssetInfo, INTERNAL_URL_PREFIX
from .cache import SnapshotCache
from .graph_decoder import DEFAULT_MAX_DEPTH, GraphDecoder
from .reference_finder import FileReferenceRecord, ReferenceFinder, TREE_EXTENSIONS, walk_files
from .tree_cache import TreeCache, read_text_file
from .uuid_utils import compress_uuid, is_uuid

logger = logging.getLogger(__name__)

SCRIPT_TYPES = {'typescript', 'javascript'}
TREE_ASSET_KINDS = {'scene', 'prefab'}


@dataclass
class ContentChangedEvent:
    """Notification that an asset changed on disk."""
    kind: str
    identifier: str


@dataclass
class AssetReferenceReport:
    """References found for one selected asset."""
    asset: AssetInfo
    search_id: str
    results: List[FileReferenceRecord] = field(default_factory=list)

    @property
    def node_reference_count(self) -> int:
        return sum(len(result.refs) for result in self.results if result.refs is not None)

    @property
    def asset_reference_count(self) -> int:
        return sum(1 for result in self.results if result.refs is None)


class AssetProject:
    """Reference lookups for a single project."""

    def __init__(self, project_root: str | Path, persist_cache: bool = False,
                 cache_dir_name: str = '.assetrefs_cache', max_depth: int = DEFAULT_MAX_DEPTH):
        """Initialize project services.

        Args:
            project_root: Project directory (the one containing `assets/`)
            persist_cache: Keep decoded trees in an SQLite snapshot between runs
            cache_dir_name: Snapshot directory name under the project root
            max_depth: Deepest node nesting accepted by the decoder
        """
        self.project_root = Path(project_root).resolve()
        self.asset_db = AssetDatabase(self.project_root / 'assets')
        # Canonical (symlink-free) root; tree cache keys and asset paths both derive from it
        self.assets_root = self.asset_db.assets_root
        self.snapshot = SnapshotCache(self.project_root, cache_dir_name) if persist_cache else None
        self.tree_cache = TreeCache(
            read_file=read_text_file,
            decoder=GraphDecoder(max_depth),
            snapshot=self.snapshot,
        )
        self.finder = ReferenceFinder(
            self.assets_root,
            self.tree_cache,
            enumerate_files=walk_files,
            read_file=read_text_file,
            resolve_asset=self.asset_db.resolve,
            path_to_url=self.asset_db.path_to_url,
        )

    def resolve(self, identifier: str) -> Optional[AssetInfo]:
        """Resolve a uuid, a `db://` url or a file path to an asset."""
        if is_uuid(identifier):
            return self.asset_db.resolve(identifier)
        if identifier.startswith('db://'):
            path = self.asset_db.url_to_path(identifier)
            return self.asset_db.resolve_path(path) if path else None

        path = Path(identifier)
        if not path.is_absolute():
            candidates = [self.project_root / path, self.assets_root / path, Path.cwd() / path]
            path = next((c for c in candidates if c.exists()), candidates[0])
        return self.asset_db.resolve_path(path)

    def find_asset_references(self, identifier: str) -> Optional[AssetReferenceReport]:
        """Find all references to a selected asset.

        Scripts are searched by their compressed uuid (how components store
        them); textures also report references to their sprite frames.

        Returns:
            Report, or None for folders and unknown assets
        """
        asset = self.resolve(identifier)
        if asset is None:
            logger.warning("Unknown asset: %s", identifier)
            return None
        if asset.type == 'folder':
            return None

        search_id = asset.uuid
        if asset.type in SCRIPT_TYPES:
            search_id = compress_uuid(asset.uuid)

        results = self.finder.find_references(search_id)
        if asset.type == 'texture':
            for sub_uuid in self.asset_db.sub_asset_uuids(asset.uuid):
                results.extend(self.finder.find_references(sub_uuid))

        return AssetReferenceReport(asset=asset, search_id=search_id, results=results)

    def on_content_changed(self, event: ContentChangedEvent):
        """Drop cached trees of a changed scene or prefab."""
        if event.kind not in TREE_ASSET_KINDS:
            return
        asset = self.asset_db.resolve(event.identifier)
        if asset is None:
            # Possibly a new asset; rescan meta files and try once more
            self.asset_db.refresh()
            asset = self.asset_db.resolve(event.identifier)
        if asset is None or asset.url.startswith(INTERNAL_URL_PREFIX):
            return
        self.tree_cache.invalidate(asset.path)

    def preload(self) -> int:
        """Decode every scene and prefab ahead of the first search."""
        paths: List[str] = []

        def visit(path: str, stats):
            if Path(path).suffix in TREE_EXTENSIONS:
                paths.append(path)

        walk_files(str(self.assets_root), visit)
        return self.tree_cache.preload(paths)

    def close(self):
        if self.snapshot is not None:
            self.snapshot.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
