"""Asset database built from `.meta` side-car files.

Every asset under the project's `assets/` directory has a `<name>.meta` JSON
file carrying its uuid, plus the uuids of derived sub-assets (sprite frames
of a texture) under `subMetas`.
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .uuid_utils import decompress_uuid, is_compressed_uuid, is_uuid

logger = logging.getLogger(__name__)

ASSETS_URL_PREFIX = 'db://assets'
INTERNAL_URL_PREFIX = 'db://internal'
META_SUFFIX = '.meta'


@dataclass
class AssetInfo:
    """Metadata of one asset (or sub-asset)."""
    uuid: str
    type: str
    url: str
    path: str

    @property
    def short_url(self) -> str:
        return self.url.replace('db://', '', 1)


class AssetDatabase:
    """uuid → AssetInfo lookup over a project's assets directory."""

    # Asset type by file extension
    ASSET_TYPES = {
        '.fire': 'scene',
        '.scene': 'scene',
        '.prefab': 'prefab',
        '.anim': 'animation-clip',
        '.mtl': 'material',
        '.effect': 'effect',
        '.png': 'texture',
        '.jpg': 'texture',
        '.jpeg': 'texture',
        '.webp': 'texture',
        '.plist': 'sprite-atlas',
        '.fnt': 'bitmap-font',
        '.ttf': 'ttf-font',
        '.labelatlas': 'label-atlas',
        '.ts': 'typescript',
        '.js': 'javascript',
        '.json': 'json',
        '.txt': 'text',
        '.mp3': 'audio-clip',
        '.ogg': 'audio-clip',
        '.wav': 'audio-clip',
    }

    def __init__(self, assets_root: str | Path):
        """Initialize asset database. Meta files are scanned on first lookup.

        Args:
            assets_root: The project's `assets` directory
        """
        self.assets_root = Path(assets_root).resolve()
        self._assets: Optional[Dict[str, AssetInfo]] = None
        self._by_path: Dict[str, str] = {}
        self._sub_assets: Dict[str, List[str]] = {}

    def refresh(self):
        """Drop the index; the next lookup rescans the meta files."""
        self._assets = None
        self._by_path = {}
        self._sub_assets = {}

    def resolve(self, identifier: str) -> Optional[AssetInfo]:
        """Map a uuid (dashed or compressed) to its asset metadata.

        Returns:
            AssetInfo, or None if the uuid is unknown
        """
        if not is_uuid(identifier):
            return None
        if is_compressed_uuid(identifier):
            identifier = decompress_uuid(identifier)
        return self._index().get(identifier.lower())

    def resolve_path(self, path: str | Path) -> Optional[AssetInfo]:
        """Map a file path to its asset metadata."""
        uuid = self.uuid_for_path(path)
        return self.resolve(uuid) if uuid else None

    def uuid_for_path(self, path: str | Path) -> Optional[str]:
        self._index()
        return self._by_path.get(str(Path(path).resolve()))

    def sub_asset_uuids(self, uuid: str) -> List[str]:
        """uuids of the sub-assets derived from an asset (e.g. sprite frames)."""
        self._index()
        return list(self._sub_assets.get(uuid.lower(), []))

    def path_to_url(self, path: str | Path) -> str:
        """Convert a file path under the assets root to a `db://assets/...` url."""
        path = Path(path).resolve()
        try:
            relative = path.relative_to(self.assets_root)
        except ValueError:
            return str(path)
        relative_posix = relative.as_posix()
        if relative_posix == '.':
            return ASSETS_URL_PREFIX
        return f"{ASSETS_URL_PREFIX}/{relative_posix}"

    def url_to_path(self, url: str) -> Optional[Path]:
        """Convert a `db://assets/...` url to a file path."""
        if url == ASSETS_URL_PREFIX:
            return self.assets_root
        if not url.startswith(ASSETS_URL_PREFIX + '/'):
            return None
        return self.assets_root.joinpath(*url[len(ASSETS_URL_PREFIX) + 1:].split('/'))

    def all_assets(self) -> List[AssetInfo]:
        return list(self._index().values())

    def _index(self) -> Dict[str, AssetInfo]:
        if self._assets is None:
            self._assets = {}
            self._scan()
        return self._assets

    def _scan(self):
        """Read every meta file under the assets root."""
        if not self.assets_root.is_dir():
            logger.warning("Assets directory not found: %s", self.assets_root)
            return

        for dirpath, dirnames, filenames in os.walk(self.assets_root):
            dirnames.sort()
            for filename in sorted(filenames):
                if filename.endswith(META_SUFFIX):
                    self._register(Path(dirpath) / filename)

        logger.debug("Indexed %d assets under %s", len(self._assets), self.assets_root)

    def _register(self, meta_path: Path):
        try:
            with open(meta_path, 'r', encoding='utf-8') as f:
                meta = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Skipping unreadable meta file %s: %s", meta_path, e)
            return

        if not isinstance(meta, dict) or not is_uuid(meta.get('uuid')):
            return

        asset_path = meta_path.with_name(meta_path.name[:-len(META_SUFFIX)])
        uuid = meta['uuid'].lower()
        asset_type = self._asset_type(asset_path)
        info = AssetInfo(uuid=uuid, type=asset_type, url=self.path_to_url(asset_path),
                         path=str(asset_path))
        self._assets[uuid] = info
        self._by_path[str(asset_path.resolve())] = uuid

        sub_metas = meta.get('subMetas')
        if not isinstance(sub_metas, dict):
            return
        sub_type = 'sprite-frame' if asset_type == 'texture' else 'sub-asset'
        for name, sub_meta in sub_metas.items():
            if not isinstance(sub_meta, dict) or not is_uuid(sub_meta.get('uuid')):
                continue
            sub_uuid = sub_meta['uuid'].lower()
            self._assets[sub_uuid] = AssetInfo(uuid=sub_uuid, type=sub_type,
                                               url=f"{info.url}/{name}", path=info.path)
            self._sub_assets.setdefault(uuid, []).append(sub_uuid)

    def _asset_type(self, asset_path: Path) -> str:
        if asset_path.is_dir():
            return 'folder'
        return self.ASSET_TYPES.get(asset_path.suffix.lower(), 'asset')
