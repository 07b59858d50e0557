"""Serialized graph decoding for scene and prefab files.

Scene and prefab files are JSON arrays of records. Record 0 describes the
asset and the rest reference each other through `{"__id__": N}` wrappers.
The decoder follows the child, component and prefab-link relations only and
materializes them as an ordered tree of NodeRecord objects.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .deep_search import contains_key

ID_KEY = '__id__'
UUID_KEY = '__uuid__'
TYPE_KEY = '__type__'
NAME_KEY = '_name'
FILE_ID_KEY = 'fileId'
CHILDREN_KEY = '_children'
COMPONENTS_KEY = '_components'
PREFAB_KEY = '_prefab'

SCENE_ASSET_TYPE = 'cc.SceneAsset'
PREFAB_ASSET_TYPE = 'cc.Prefab'

# Kept on every summary regardless of whether they carry a uuid
SUMMARY_KEYS = (TYPE_KEY, NAME_KEY, FILE_ID_KEY)

DEFAULT_MAX_DEPTH = 256


class GraphDecodeError(ValueError):
    """Raised when a serialized graph is structurally malformed."""


class TreeKind(str, Enum):
    SCENE = 'scene'
    PREFAB = 'prefab'


@dataclass
class NodeRecord:
    """A node of the decoded tree. Owns its children."""
    id: int
    name: str
    declared_type: str
    path: str
    components: List[Dict[str, Any]] = field(default_factory=list)
    prefab_link: Optional[Dict[str, Any]] = None
    children: List['NodeRecord'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'declared_type': self.declared_type,
            'path': self.path,
            'components': self.components,
            'prefab_link': self.prefab_link,
            'children': [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NodeRecord':
        return cls(
            id=data['id'],
            name=data['name'],
            declared_type=data['declared_type'],
            path=data['path'],
            components=data.get('components') or [],
            prefab_link=data.get('prefab_link'),
            children=[cls.from_dict(child) for child in data.get('children') or []],
        )

    def walk(self):
        """Yield this node and its descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass
class Tree:
    """Decoded scene or prefab.

    `owner_id` is the prefab's own uuid (prefab trees only).
    """
    kind: TreeKind
    root_id: int
    nodes: List[NodeRecord] = field(default_factory=list)
    owner_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'root_id': self.root_id,
            'owner_id': self.owner_id,
            'nodes': [node.to_dict() for node in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tree':
        return cls(
            kind=TreeKind(data['kind']),
            root_id=data['root_id'],
            owner_id=data.get('owner_id'),
            nodes=[NodeRecord.from_dict(node) for node in data.get('nodes') or []],
        )

    def walk(self):
        """Yield every node of the tree in pre-order."""
        for node in self.nodes:
            yield from node.walk()


def extract_valid_info(record: Dict[str, Any]) -> Dict[str, Any]:
    """Project a component or prefab-link record down to its uuid-bearing fields.

    `__type__`, `_name` and `fileId` are kept when present and non-empty.
    Every other property is kept verbatim only if its value holds a
    `__uuid__` key somewhere inside it.

    Args:
        record: Raw record from the serialized graph

    Returns:
        Filtered copy of the record
    """
    result: Dict[str, Any] = {}
    for key in SUMMARY_KEYS:
        value = record.get(key)
        if value is not None and value != '':
            result[key] = value
    for key, value in record.items():
        if key in SUMMARY_KEYS:
            continue
        if contains_key(value, UUID_KEY):
            result[key] = value
    return result


class GraphDecoder:
    """Decode serialized graphs (JSON arrays) into Tree objects."""

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        """Initialize decoder.

        Args:
            max_depth: Deepest node nesting accepted before the graph is
                treated as malformed
        """
        self.max_depth = max_depth

    def decode(self, graph: Any) -> Optional[Tree]:
        """Convert a serialized graph into a Tree.

        Args:
            graph: Decoded JSON array of records

        Returns:
            Tree, or None if the root descriptor type is not a scene or prefab

        Raises:
            GraphDecodeError: If the graph is structurally malformed
        """
        if not isinstance(graph, list) or not graph:
            raise GraphDecodeError("serialized graph must be a non-empty array")

        descriptor = self._record(graph, 0)
        asset_type = descriptor.get(TYPE_KEY)

        if asset_type == SCENE_ASSET_TYPE:
            scene_id = self._pointer(graph, descriptor.get('scene'), 'scene')
            tree = Tree(kind=TreeKind.SCENE, root_id=scene_id)
            scene = self._record(graph, scene_id)
            # A scene can hold several top-level nodes
            for node_id in self._pointer_list(graph, scene.get(CHILDREN_KEY), CHILDREN_KEY):
                tree.nodes.append(self.decode_node(graph, node_id, None))
            return tree

        if asset_type == PREFAB_ASSET_TYPE:
            data_id = self._pointer(graph, descriptor.get('data'), 'data')
            tree = Tree(kind=TreeKind.PREFAB, root_id=data_id, owner_id=self._prefab_owner(graph))
            tree.nodes.append(self.decode_node(graph, data_id, None))
            return tree

        return None

    def decode_node(self, graph: List[Any], node_id: int, parent: Optional[NodeRecord],
                    depth: int = 0) -> NodeRecord:
        """Build the NodeRecord for `graph[node_id]` and its whole subtree.

        Args:
            graph: Serialized graph
            node_id: Index of the node record
            parent: Already-built parent node, None at the top level
            depth: Current nesting depth

        Returns:
            The decoded node with components, prefab link and children

        Raises:
            GraphDecodeError: On dangling pointers or excessive nesting
        """
        if depth > self.max_depth:
            raise GraphDecodeError(
                f"node nesting exceeds {self.max_depth} levels at index {node_id}"
            )

        data = self._record(graph, node_id)
        name = data.get(NAME_KEY)
        name = '' if name is None else str(name)
        node = NodeRecord(
            id=node_id,
            name=name,
            declared_type=data.get(TYPE_KEY) or '',
            path=f"{parent.path}/{name}" if parent is not None else name,
        )

        prefab = data.get(PREFAB_KEY)
        if prefab:
            prefab_id = self._pointer(graph, prefab, PREFAB_KEY)
            node.prefab_link = extract_valid_info(self._record(graph, prefab_id))

        for component_id in self._pointer_list(graph, data.get(COMPONENTS_KEY), COMPONENTS_KEY):
            node.components.append(extract_valid_info(self._record(graph, component_id)))

        for child_id in self._pointer_list(graph, data.get(CHILDREN_KEY), CHILDREN_KEY):
            node.children.append(self.decode_node(graph, child_id, node, depth + 1))

        return node

    @staticmethod
    def _prefab_owner(graph: List[Any]) -> Optional[str]:
        """Read the prefab's own uuid from the trailing PrefabInfo record."""
        info = graph[-1]
        if not isinstance(info, dict):
            return None
        asset = info.get('asset')
        if isinstance(asset, dict):
            return asset.get(UUID_KEY)
        return None

    @staticmethod
    def _record(graph: List[Any], index: int) -> Dict[str, Any]:
        if not 0 <= index < len(graph):
            raise GraphDecodeError(f"index {index} is out of range (graph has {len(graph)} records)")
        record = graph[index]
        if not isinstance(record, dict):
            raise GraphDecodeError(f"record {index} is not an object")
        return record

    @staticmethod
    def _pointer(graph: List[Any], wrapper: Any, relation: str) -> int:
        if not isinstance(wrapper, dict):
            raise GraphDecodeError(f"'{relation}' is not an index reference")
        index = wrapper.get(ID_KEY)
        if isinstance(index, bool) or not isinstance(index, int):
            raise GraphDecodeError(f"'{relation}' has no integer {ID_KEY}")
        if not 0 <= index < len(graph):
            raise GraphDecodeError(f"'{relation}' points outside the graph ({index})")
        return index

    @classmethod
    def _pointer_list(cls, graph: List[Any], wrappers: Any, relation: str) -> List[int]:
        if not wrappers:
            return []
        if not isinstance(wrappers, list):
            raise GraphDecodeError(f"'{relation}' is not a list")
        return [cls._pointer(graph, wrapper, relation) for wrapper in wrappers]


def decode(graph: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[Tree]:
    """Module-level shortcut for GraphDecoder(max_depth).decode(graph)."""
    return GraphDecoder(max_depth).decode(graph)
