"""End-to-end reference lookups over the sample project."""

import json
import shutil
from pathlib import Path

import pytest

from assetrefs.analyzer.project import AssetProject, ContentChangedEvent
from assetrefs.analyzer.reference_finder import ReferenceRecord


SAMPLE_PROJECT = Path(__file__).parent / 'fixtures' / 'sample_project'

FONT_UUID = "3a7d5c2e-1b4f-4e8a-9c6d-0f2e4b8a1c3d"
TEXTURE_UUID = "7b1e9f3a-5c2d-4a6b-8e0f-1d3c5a7b9e2f"
SPRITE_FRAME_UUID = "9c4a2e6f-8b1d-4f3e-a5c7-2e9b4d6f8a1c"
PREFAB_UUID = "5e8c1a3f-7d2b-4e9a-b6c4-3f1a8d5e2c7b"
SCENE_UUID = "1f3e5a7c-9b2d-4c6e-8a0f-4b2d6e8a0c1e"
SCRIPT_UUID = "2d5f8a1c-3b7e-4c9d-8e2f-6a4b1c0d9e7f"
SCRIPT_COMPRESSED = "2d5f8ocO35MnY4vakscDZ5/"
FOLDER_UUID = "0b2d4f6a-8c1e-4a3b-9d5f-7e9a1c3b5d7f"


@pytest.fixture
def project():
    with AssetProject(SAMPLE_PROJECT) as p:
        yield p


@pytest.fixture
def project_copy(tmp_path):
    """A writable copy of the sample project."""
    root = tmp_path / 'project'
    shutil.copytree(SAMPLE_PROJECT, root)
    return root


def short_urls(report):
    return [r.file_url.replace('db://', '') for r in report.results]


class TestResolve:
    """Assets can be selected by uuid, url or path."""

    def test_by_uuid_url_and_path(self, project):
        by_uuid = project.resolve(PREFAB_UUID)
        assert by_uuid.url == "db://assets/prefabs/weapon.prefab"
        assert project.resolve("db://assets/prefabs/weapon.prefab") == by_uuid
        assert project.resolve("assets/prefabs/weapon.prefab") == by_uuid
        assert project.resolve("prefabs/weapon.prefab") == by_uuid
        assert project.resolve(str(SAMPLE_PROJECT / 'assets' / 'prefabs' / 'weapon.prefab')) == by_uuid

    def test_unknown(self, project):
        assert project.resolve("db://assets/nope.prefab") is None
        assert project.resolve("db://internal/image/default.png") is None
        assert project.resolve("00000000-0000-0000-0000-000000000000") is None


class TestFindAssetReferences:
    """Reports combine tree-level and flat-file results."""

    def test_font_used_by_label(self, project):
        report = project.find_asset_references(FONT_UUID)

        assert report.search_id == FONT_UUID
        assert short_urls(report) == ["assets/scenes/main.fire"]
        assert report.results[0].refs == [ReferenceRecord("Canvas", "cc.Label", "font")]

    def test_prefab_own_root_link_is_not_reported(self, project):
        report = project.find_asset_references(PREFAB_UUID)

        assert short_urls(report) == ["assets/scenes/main.fire"]
        assert report.results[0].refs == [
            ReferenceRecord("Canvas/Hero", "Player.ts", "weapon"),
            ReferenceRecord("Canvas/Sword"),
        ]
        assert report.node_reference_count == 2
        assert report.asset_reference_count == 0

    def test_texture_includes_sprite_frame_references(self, project):
        report = project.find_asset_references(TEXTURE_UUID)

        assert [(r.asset_kind, r.file_url) for r in report.results] == [
            ("font", "db://assets/fonts/title.fnt.meta"),
            ("material", "db://assets/materials/glow.mtl"),
            ("animation", "db://assets/anims/spin.anim"),
            ("prefab", "db://assets/prefabs/weapon.prefab"),
            ("scene", "db://assets/scenes/main.fire"),
        ]
        assert report.results[3].refs == [ReferenceRecord("Weapon/Blade", "cc.Sprite", "spriteFrame")]
        assert report.results[4].refs == [ReferenceRecord("Canvas/Hero", "cc.Sprite", "spriteFrame")]
        assert report.node_reference_count == 2
        assert report.asset_reference_count == 3

    def test_script_is_searched_by_compressed_uuid(self, project):
        report = project.find_asset_references(SCRIPT_UUID)

        assert report.search_id == SCRIPT_COMPRESSED
        assert report.results[0].refs == [ReferenceRecord("Canvas/Hero", "Player.ts", None)]

    def test_unreferenced_asset(self, project):
        report = project.find_asset_references(SCENE_UUID)
        assert report.results == []

    def test_folder_and_unknown_return_none(self, project, caplog):
        assert project.find_asset_references(FOLDER_UUID) is None
        assert project.find_asset_references("db://assets/missing.png") is None
        assert "Unknown asset" in caplog.text


class TestContentChanged:
    """Scene and prefab edits drop cached trees; other changes are ignored."""

    def test_scene_edit_is_picked_up(self, project_copy):
        scene = project_copy / 'assets' / 'scenes' / 'main.fire'
        with AssetProject(project_copy) as project:
            assert project.find_asset_references(FONT_UUID).results

            graph = json.loads(scene.read_text(encoding='utf-8'))
            del graph[8]["_N$file"]
            scene.write_text(json.dumps(graph), encoding='utf-8')

            # Still served from the cache until notified
            assert project.find_asset_references(FONT_UUID).results
            project.on_content_changed(ContentChangedEvent('scene', SCENE_UUID))
            assert project.find_asset_references(FONT_UUID).results == []

    def test_other_kinds_are_ignored(self, project_copy):
        with AssetProject(project_copy) as project:
            project.preload()
            scene_path = project.resolve(SCENE_UUID).path

            project.on_content_changed(ContentChangedEvent('texture', SCENE_UUID))
            project.on_content_changed(ContentChangedEvent('scene', "db://internal/x"))
            assert scene_path in project.tree_cache

            project.on_content_changed(ContentChangedEvent('scene', SCENE_UUID))
            assert scene_path not in project.tree_cache

    def test_new_asset_triggers_database_refresh(self, project_copy):
        new_uuid = "aaaaaaaa-bbbb-4ccc-8ddd-eeeeeeeeeeee"
        assets = project_copy / 'assets'
        with AssetProject(project_copy) as project:
            assert project.resolve(new_uuid) is None

            shutil.copy(assets / 'scenes' / 'main.fire', assets / 'scenes' / 'copy.fire')
            (assets / 'scenes' / 'copy.fire.meta').write_text(json.dumps({"uuid": new_uuid}), encoding='utf-8')
            project.on_content_changed(ContentChangedEvent('scene', new_uuid))

            assert project.resolve(new_uuid).url == "db://assets/scenes/copy.fire"

    def test_symlinked_assets_directory(self, tmp_path):
        real_assets = tmp_path / 'real_assets'
        shutil.copytree(SAMPLE_PROJECT / 'assets', real_assets)
        root = tmp_path / 'linked'
        root.mkdir()
        try:
            (root / 'assets').symlink_to(real_assets, target_is_directory=True)
        except OSError:
            pytest.skip("symlinks not supported")

        scene = real_assets / 'scenes' / 'main.fire'
        with AssetProject(root) as project:
            assert len(project.find_asset_references(FONT_UUID).results) == 1

            graph = json.loads(scene.read_text(encoding='utf-8'))
            del graph[8]["_N$file"]
            scene.write_text(json.dumps(graph), encoding='utf-8')
            project.on_content_changed(ContentChangedEvent('scene', SCENE_UUID))

            assert project.find_asset_references(FONT_UUID).results == []

    def test_preload_counts_decoded_trees(self, project):
        assert project.preload() == 2
        assert len(project.tree_cache) == 2


class TestPersistentCache:
    """With persistence on, decoded trees survive a new project instance."""

    def test_snapshot_reused(self, project_copy):
        with AssetProject(project_copy, persist_cache=True) as project:
            project.preload()
            assert project.snapshot.get_cache_stats()['trees_cached'] == 2

        with AssetProject(project_copy, persist_cache=True) as project:
            report = project.find_asset_references(FONT_UUID)
        assert report.results[0].refs == [ReferenceRecord("Canvas", "cc.Label", "font")]
        assert (project_copy / '.assetrefs_cache' / 'trees.db').exists()
