import json
import logging
import sys

import pytest

import fake_gtk
from gtkwire.compiler.build import MANIFEST_NAME, ProjectBuilder, build_project, compile_file
from gtkwire.compiler.exceptions import LoweringError, WireFileError
from gtkwire.config import GtkWireConfig
from gtkwire.core.signals import get
from gtkwire.runtime.loader import BUILD_DIR_ENV, ComponentLoader, find_build_dir, load_component
from wire_support import write_tree

PROJECT = {
    "store.py": (
        '"""Application state shared between components."""\n'
        "count = state(0)\n"
        "total = count\n"
        "\n"
        "def reset():\n"
        "    count = 0\n"
    ),
    "relay.py": "from .store import total as shared\n",
    "widgets/Counter.wire": (
        "---\n"
        "value, = props(value=bindable(0))\n"
        "---\n"
        "<button @click={value += 1}>{value}</button>\n"
    ),
    "App.wire": (
        "---\n"
        "from .relay import shared\n"
        "from .store import reset\n"
        "from .widgets.Counter import Counter\n"
        "---\n"
        "<label>Shared {shared}</label>\n"
        "<Counter value={shared}/>\n"
        "<button @click={reset}>Reset</button>\n"
    ),
}


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "src"
    write_tree(src, PROJECT)
    return GtkWireConfig(src_dir=src, out_dir=tmp_path / "build")


def manifest_of(config):
    return json.loads((config.out_dir / MANIFEST_NAME).read_text())


class TestBuild:
    def test_writes_every_artifact(self, project):
        summary = build_project(project)
        assert (summary.components, summary.modules) == (2, 2)

        names = sorted(p.name for p in project.out_dir.iterdir())
        assert names == [
            "App.py",
            "manifest.json",
            "relay.py",
            "store.py",
            "widgets_Counter.py",
        ]

    def test_manifest_entries(self, project):
        build_project(project)
        manifest = manifest_of(project)
        assert manifest["version"] == 1
        assert manifest["src_dir"] == str(project.src_dir.resolve())

        entry = manifest["entries"][str((project.src_dir / "widgets" / "Counter.wire").resolve())]
        assert entry["artifact"] == "widgets_Counter.py"
        assert entry["module"] == "widgets_Counter"
        assert entry["kind"] == "component"
        assert len(entry["hash"]) == 64

        store = manifest["entries"][str((project.src_dir / "store.py").resolve())]
        assert store["kind"] == "module"

    def test_reactive_re_exports_are_known_project_wide(self, project):
        builder = ProjectBuilder(project)
        metadata = builder.analyze()
        by_name = {meta.mangled_name: meta for meta in metadata.values()}
        assert by_name["store"].reactive_exports == {"count", "total"}
        assert by_name["relay"].reactive_exports == {"shared"}

        app = builder.compile_one(project.src_dir / "App.wire").code
        assert "f'Shared {_get(shared)}'" in app
        assert "counter_0 = Counter({'value': shared})" in app
        assert "from widgets_Counter import widgets_Counter as Counter" in app

    def test_failed_build_leaves_previous_output(self, project):
        build_project(project)
        before = manifest_of(project)

        (project.src_dir / "Broken.wire").write_text("<div/>")
        with pytest.raises(LoweringError):
            build_project(project)

        assert manifest_of(project) == before
        assert not (project.out_dir / "Broken.py").exists()

    def test_stale_artifacts_are_removed(self, project):
        build_project(project)
        (project.src_dir / "relay.py").unlink()
        (project.src_dir / "App.wire").write_text("<label>alone</label>")
        build_project(project)
        assert not (project.out_dir / "relay.py").exists()

    def test_optimize_precompiles(self, project):
        build_project(project, optimize=True)
        cached = list((project.out_dir / "__pycache__").glob("App.*.pyc"))
        assert cached

    def test_missing_source_dir(self, tmp_path):
        config = GtkWireConfig(src_dir=tmp_path / "nope", out_dir=tmp_path / "build")
        with pytest.raises(WireFileError, match="Source directory not found"):
            build_project(config)

    def test_output_inside_sources_is_skipped(self, tmp_path):
        write_tree(tmp_path, {"App.wire": "<label>x</label>"})
        config = GtkWireConfig(src_dir=tmp_path, out_dir=tmp_path / "out")
        build_project(config)
        build_project(config)
        assert sorted(p.name for p in config.out_dir.iterdir()) == ["App.py", "manifest.json"]

    def test_build_dir_gitignore(self, tmp_path):
        write_tree(tmp_path, {"src/App.wire": "<label>x</label>"})
        config = GtkWireConfig(
            src_dir=tmp_path / "src", out_dir=tmp_path / ".gtkwire" / "build"
        )
        build_project(config)
        assert (tmp_path / ".gtkwire" / ".gitignore").read_text() == "*"


class TestCompileFile:
    def test_uses_project_metadata(self, project):
        code = compile_file(project.src_dir / "App.wire", project)
        assert "_get(shared)" in code

    def test_file_outside_source_root(self, tmp_path):
        write_tree(tmp_path, {"loose/Hello.wire": "<label>hi</label>"})
        config = GtkWireConfig(src_dir=tmp_path / "src", out_dir=tmp_path / "build")
        code = compile_file(tmp_path / "loose" / "Hello.wire", config)
        assert "__all__ = ['Hello']" in code

    def test_missing_file(self, tmp_path):
        with pytest.raises(WireFileError, match="File not found"):
            compile_file(tmp_path / "Nope.wire")


class TestLoader:
    def test_components_share_cells_across_modules(self, project, fake_gi, isolated_imports):
        build_project(project)
        factory = ComponentLoader(project.out_dir).load(project.src_dir / "App.wire")
        root = factory().root_widget
        counter_button, reset_button = fake_gtk.find_all(root, fake_gtk.Button)

        assert fake_gtk.labels(root) == ["Shared 0", "0", "Reset"]
        counter_button.clicked()
        counter_button.clicked()
        assert fake_gtk.labels(root) == ["Shared 2", "2", "Reset"]
        assert get(sys.modules["store"].count) == 2

        reset_button.clicked()
        assert fake_gtk.labels(root) == ["Shared 0", "0", "Reset"]

    def test_props_from_caller(self, project, fake_gi, isolated_imports):
        build_project(project)
        loader = ComponentLoader(project.out_dir)
        counter = loader.load(project.src_dir / "widgets" / "Counter.wire")
        root = counter({"value": 5}).root_widget
        assert fake_gtk.labels(root) == ["5"]
        fake_gtk.find_all(root, fake_gtk.Button)[0].clicked()
        assert fake_gtk.labels(root) == ["6"]

    def test_module_is_not_a_component(self, project, isolated_imports):
        build_project(project)
        with pytest.raises(WireFileError, match="is not a component"):
            ComponentLoader(project.out_dir).load(project.src_dir / "store.py")

    def test_unknown_source(self, project):
        build_project(project)
        with pytest.raises(WireFileError, match="is not part of the build"):
            ComponentLoader(project.out_dir).entry_for(project.src_dir / "Other.wire")

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(WireFileError, match="No build manifest"):
            ComponentLoader(tmp_path).manifest

    def test_stale_source_warns(self, project, fake_gi, isolated_imports, caplog):
        build_project(project)
        source = project.src_dir / "widgets" / "Counter.wire"
        loader = ComponentLoader(project.out_dir)
        assert loader.is_fresh(source)

        source.write_text(source.read_text() + "\n<label>new</label>\n")
        assert not loader.is_fresh(source)
        with caplog.at_level(logging.WARNING, logger="gtkwire.runtime.loader"):
            loader.load(source)
        assert "changed since it was built" in caplog.text

    def test_build_dir_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv(BUILD_DIR_ENV, str(tmp_path / "elsewhere"))
        assert find_build_dir(tmp_path) == tmp_path / "elsewhere"

    def test_build_dir_from_pyproject(self, tmp_path, monkeypatch):
        monkeypatch.delenv(BUILD_DIR_ENV, raising=False)
        write_tree(tmp_path, {"pyproject.toml": '[tool.gtkwire]\nout_dir = "dist/ui"\n'})
        assert find_build_dir(tmp_path) == (tmp_path / "dist" / "ui").resolve()

    def test_load_component(self, project, fake_gi, isolated_imports):
        build_project(project)
        factory = load_component(project.src_dir / "App.wire", project.out_dir)
        assert callable(factory)
