"""Project-wide search for references to an asset uuid.

Scene and prefab files are searched node by node through their decoded trees
so every hit names a node path, a component and a property. Animation,
material and font files are searched as flat JSON and only report the file.
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .asset_db import AssetInfo
from .deep_search import contains_value, find_first_match
from .graph_decoder import NodeRecord, TYPE_KEY, Tree
from .tree_cache import TreeCache, read_text_file
from .uuid_utils import decompress_uuid, is_uuid

logger = logging.getLogger(__name__)

# Asset kinds reported for each file type
SCENE = 'scene'
PREFAB = 'prefab'
ANIMATION = 'animation'
MATERIAL = 'material'
FONT = 'font'

TREE_EXTENSIONS = {
    '.fire': SCENE,
    '.scene': SCENE,
    '.prefab': PREFAB,
}
FONT_META_SUFFIX = '.fnt.meta'

# (component label, raw property name) -> public property name
PROPERTY_ALIASES = {
    ('cc.Label', '_N$file'): 'font',
}
INTERNAL_PREFIX = '_N$'


@dataclass
class ReferenceRecord:
    """A reference from one node.

    `component` and `property` are None for prefab-link references.
    """
    node_path: str
    component: Optional[str] = None
    property: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'node': self.node_path, 'component': self.component, 'property': self.property}


@dataclass
class FileReferenceRecord:
    """All references found in one file.

    `refs` is None for flat formats, which only report the file itself.
    """
    asset_kind: str
    file_url: str
    file_path: str
    refs: Optional[List[ReferenceRecord]] = None

    @property
    def is_node_level(self) -> bool:
        return self.refs is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.asset_kind,
            'url': self.file_url,
            'path': self.file_path,
            'refs': None if self.refs is None else [ref.to_dict() for ref in self.refs],
        }


def walk_files(root: str, visit: Callable[[str, os.stat_result], None]):
    """Visit every file under `root` in sorted (deterministic) order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = os.path.join(dirpath, filename)
            try:
                stats = os.stat(path)
            except OSError:
                continue
            visit(path, stats)


def normalize_property(component_label: str, property_name: Optional[str]) -> Optional[str]:
    """Turn a serialized property name into the name shown in the editor.

    `_N$file` on a Label becomes `font`; otherwise the first `_N$` is removed,
    or a single leading underscore.
    """
    if not property_name:
        return property_name
    alias = PROPERTY_ALIASES.get((component_label, property_name))
    if alias is not None:
        return alias
    if INTERNAL_PREFIX in property_name:
        return property_name.replace(INTERNAL_PREFIX, '', 1)
    if property_name.startswith('_'):
        return property_name[1:]
    return property_name


def classify(path: str) -> Optional[str]:
    """Asset kind of a file, or None if it is never searched."""
    if path.endswith(FONT_META_SUFFIX):
        return FONT
    extension = os.path.splitext(path)[1]
    if extension in TREE_EXTENSIONS:
        return TREE_EXTENSIONS[extension]
    if extension == '.anim':
        return ANIMATION
    if extension == '.mtl':
        return MATERIAL
    return None


class ReferenceFinder:
    """Scan a project's asset files for references to a uuid."""

    def __init__(self, assets_root: str | Path, tree_cache: TreeCache,
                 enumerate_files: Callable = walk_files,
                 read_file: Callable[[str], str] = read_text_file,
                 resolve_asset: Optional[Callable[[str], Optional[AssetInfo]]] = None,
                 path_to_url: Optional[Callable[[str], str]] = None):
        """Initialize the finder.

        Args:
            assets_root: Directory whose files are scanned
            tree_cache: Source of decoded scene/prefab trees
            enumerate_files: `enumerate_files(root, visit)` calling `visit(path, stats)` per file
            read_file: Raw text access for flat-format files
            resolve_asset: uuid -> AssetInfo, used to label script components
            path_to_url: File path -> display url (the path itself if omitted)
        """
        self.assets_root = str(assets_root)
        self.tree_cache = tree_cache
        self.enumerate_files = enumerate_files
        self.read_file = read_file
        self.resolve_asset = resolve_asset
        self.path_to_url = path_to_url or str

    def find_references(self, target_id: str) -> List[FileReferenceRecord]:
        """Find every file referencing `target_id`.

        Args:
            target_id: uuid (or compressed uuid for scripts) to look for

        Returns:
            One record per referencing file, in enumeration order
        """
        results: List[FileReferenceRecord] = []

        def visit(path: str, stats):
            kind = classify(path)
            if kind is None:
                return
            if kind in (SCENE, PREFAB):
                record = self._search_tree_file(path, kind, target_id)
            else:
                record = self._search_flat_file(path, kind, target_id)
            if record is not None:
                results.append(record)

        self.enumerate_files(self.assets_root, visit)
        logger.debug("Found %d referencing files for %s", len(results), target_id)
        return results

    def _search_tree_file(self, path: str, kind: str, target_id: str) -> Optional[FileReferenceRecord]:
        tree = self.tree_cache.get_tree(path)
        if tree is None:
            return None
        refs = self.search_tree(tree, target_id)
        if not refs:
            return None
        return FileReferenceRecord(asset_kind=kind, file_url=self.path_to_url(path),
                                   file_path=path, refs=refs)

    def search_tree(self, tree: Tree, target_id: str) -> List[ReferenceRecord]:
        """Collect node-level references in pre-order."""
        refs: List[ReferenceRecord] = []
        # A prefab's own root links back to the prefab itself
        skip_root_links = tree.owner_id is not None and tree.owner_id == target_id
        for node in tree.nodes:
            self._search_node(node, target_id, refs, skip_prefab_link=skip_root_links)
        return refs

    def _search_node(self, node: NodeRecord, target_id: str, refs: List[ReferenceRecord],
                     skip_prefab_link: bool = False):
        for component in node.components:
            match = find_first_match(component, target_id)
            if match.found:
                label = self.component_label(component.get(TYPE_KEY) or '')
                refs.append(ReferenceRecord(
                    node_path=node.path,
                    component=label,
                    property=normalize_property(label, match.property_name),
                ))

        if node.prefab_link and not skip_prefab_link:
            if contains_value(node.prefab_link, target_id):
                refs.append(ReferenceRecord(node_path=node.path))

        for child in node.children:
            self._search_node(child, target_id, refs)

    def component_label(self, declared_type: str) -> str:
        """Human-facing component name; script components resolve to their file name."""
        if not is_uuid(declared_type) or self.resolve_asset is None:
            return declared_type
        asset = self.resolve_asset(decompress_uuid(declared_type))
        if asset is None:
            return declared_type
        return os.path.basename(asset.url)

    def _search_flat_file(self, path: str, kind: str, target_id: str) -> Optional[FileReferenceRecord]:
        try:
            data = json.loads(self.read_file(path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read %s: %s", path, e)
            return None
        except (json.JSONDecodeError, RecursionError) as e:
            logger.warning("Failed to parse %s: %s", path, e)
            return None

        if kind == ANIMATION:
            contains = isinstance(data, dict) and contains_value(data.get('curveData'), target_id)
        elif isinstance(data, dict):
            # The file's own uuid is not a reference to itself
            contains = contains_value({k: v for k, v in data.items() if k != 'uuid'}, target_id)
        else:
            contains = contains_value(data, target_id)

        if not contains:
            return None
        return FileReferenceRecord(asset_kind=kind, file_url=self.path_to_url(path), file_path=path)
