import shutil
import tempfile
import unittest
from pathlib import Path

from gtkwire.config import GtkWireConfig, find_project_root, load_config


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self.test_dir = tempfile.mkdtemp()
        self.tmp_path = Path(self.test_dir).resolve()

    def tearDown(self) -> None:
        shutil.rmtree(self.test_dir)

    def write_pyproject(self, body: str) -> None:
        (self.tmp_path / "pyproject.toml").write_text(body)

    def test_defaults_without_pyproject(self) -> None:
        config = load_config(self.tmp_path)
        self.assertEqual(config.src_dir, self.tmp_path / "src")
        self.assertEqual(config.out_dir, self.tmp_path / ".gtkwire" / "build")
        self.assertEqual(config.toolkit, "Gtk")
        self.assertEqual(config.toolkit_version, "4.0")
        self.assertEqual(config.root_spacing, 6)
        self.assertEqual(config.root_margin, 12)

    def test_tool_table(self) -> None:
        self.write_pyproject(
            '[project]\nname = "demo"\n\n'
            '[tool.gtkwire]\nsrc_dir = "ui"\nout_dir = "build/ui"\nroot_spacing = 10\n'
        )
        config = load_config(self.tmp_path)
        self.assertEqual(config.src_dir, self.tmp_path / "ui")
        self.assertEqual(config.out_dir, self.tmp_path / "build" / "ui")
        self.assertEqual(config.root_spacing, 10)
        self.assertEqual(config.root_margin, 12)

    def test_found_from_nested_directory(self) -> None:
        self.write_pyproject('[tool.gtkwire]\nsrc_dir = "ui"\n')
        nested = self.tmp_path / "ui" / "pages"
        nested.mkdir(parents=True)
        component = nested / "Home.wire"
        component.write_text("<label>home</label>")

        self.assertEqual(find_project_root(component), self.tmp_path)
        self.assertEqual(load_config(component).src_dir, self.tmp_path / "ui")

    def test_unknown_keys_are_ignored(self) -> None:
        self.write_pyproject('[tool.gtkwire]\nsrc_dir = "ui"\ncolour = "blue"\n')
        with self.assertLogs("gtkwire.config", level="WARNING") as logs:
            config = load_config(self.tmp_path)
        self.assertEqual(config.src_dir, self.tmp_path / "ui")
        self.assertIn("colour", logs.output[0])

    def test_pyproject_without_tool_table(self) -> None:
        self.write_pyproject('[project]\nname = "demo"\n')
        config = load_config(self.tmp_path)
        self.assertEqual(config.src_dir, self.tmp_path / "src")

    def test_with_overrides(self) -> None:
        config = GtkWireConfig().with_overrides(src_dir="pages", out_dir=None, root_margin=0)
        self.assertEqual(config.src_dir, Path("pages"))
        self.assertEqual(config.out_dir, Path(".gtkwire") / "build")
        self.assertEqual(config.root_margin, 0)

    def test_config_is_immutable(self) -> None:
        config = GtkWireConfig()
        with self.assertRaises(AttributeError):
            config.toolkit = "Adw"  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
