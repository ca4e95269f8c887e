import io

import pytest
from click.testing import CliRunner
from rich.console import Console

from gtkwire import __version__
from gtkwire.cli.main import _source_filter, cli
from gtkwire.cli.report import line_and_column, render_error
from gtkwire.compiler.exceptions import LoweringError, WireSyntaxError
from gtkwire.config import GtkWireConfig
from wire_support import write_tree


@pytest.fixture
def runner():
    return CliRunner()


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_build_command(runner, tmp_path):
    write_tree(tmp_path, {"src/App.wire": "<label>hi</label>"})
    out = tmp_path / "out"
    result = runner.invoke(cli, ["build", str(tmp_path / "src"), "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "Compilation successful" in result.output
    assert (out / "App.py").exists()
    assert (out / "manifest.json").exists()


def test_build_failure_exits_with_category(runner, tmp_path):
    write_tree(tmp_path, {"src/App.wire": "<box>\n  <div/>\n</box>"})
    result = runner.invoke(
        cli, ["build", str(tmp_path / "src"), "--out", str(tmp_path / "out")]
    )
    assert result.exit_code == 1
    assert "[GTK Error]" in result.output
    assert "Unsupported GTK tag: <div>" in result.output
    assert not (tmp_path / "out").exists()


def test_compile_prints_module(runner, tmp_path):
    write_tree(tmp_path, {"Hello.wire": "<label>hi</label>"})
    result = runner.invoke(cli, ["compile", str(tmp_path / "Hello.wire")])
    assert result.exit_code == 0, result.output
    assert "def Hello(props=None):" in result.output
    assert "label_0.set_label('hi')" in result.output


def test_compile_writes_module(runner, tmp_path):
    write_tree(tmp_path, {"Hello.wire": "<label>hi</label>"})
    target = tmp_path / "build" / "hello.py"
    result = runner.invoke(
        cli, ["compile", str(tmp_path / "Hello.wire"), "--out", str(target)]
    )
    assert result.exit_code == 0, result.output
    assert "[Success]" in result.output
    assert "def Hello(props=None):" in target.read_text()


def test_compile_with_source_root(runner, tmp_path):
    write_tree(tmp_path, {"ui/pages/Home.wire": "<label>home</label>"})
    result = runner.invoke(
        cli,
        ["compile", str(tmp_path / "ui" / "pages" / "Home.wire"), "--src-root", str(tmp_path / "ui")],
    )
    assert result.exit_code == 0, result.output
    assert "pages_Home = Home" in result.output


def test_compile_syntax_error(runner, tmp_path):
    write_tree(tmp_path, {"Bad.wire": "---\nx = (\n---\n<label>x</label>"})
    result = runner.invoke(cli, ["compile", str(tmp_path / "Bad.wire")])
    assert result.exit_code == 1
    assert "[Syntax Error]" in result.output


def test_compile_missing_file(runner, tmp_path):
    result = runner.invoke(cli, ["compile", str(tmp_path / "Nope.wire")])
    assert result.exit_code == 1
    assert "[File Error]" in result.output


def test_watch_filter(tmp_path):
    config = GtkWireConfig(src_dir=tmp_path, out_dir=tmp_path / "out")
    accept = _source_filter(config)
    assert accept(None, str(tmp_path / "App.wire"))
    assert accept(None, str(tmp_path / "store.py"))
    assert not accept(None, str(tmp_path / "notes.txt"))
    assert not accept(None, str(tmp_path / "out" / "App.py"))


class TestReport:
    def render(self, error, source=None):
        buffer = io.StringIO()
        render_error(Console(file=buffer, width=100), error, source)
        return buffer.getvalue()

    def test_line_and_column(self):
        source = "ab\ncd\nef"
        assert line_and_column(source, 0) == (1, 1)
        assert line_and_column(source, 4) == (2, 2)
        assert line_and_column(source, 100) == (3, 3)

    def test_message_only_without_span(self):
        output = self.render(LoweringError("Something broke"))
        assert output.strip() == "[GTK Error] Something broke"

    def test_excerpt_with_span(self):
        source = "<box>\n  <div/>\n</box>\n"
        error = WireSyntaxError("Bad tag", start=8, file_path="App.wire")
        output = self.render(error, source)
        assert "[Syntax Error] Bad tag" in output
        assert "App.wire:2:3" in output
        assert "<div/>" in output

    def test_unreadable_source_falls_back_to_message(self, tmp_path):
        error = LoweringError("Missing", start=3, file_path=str(tmp_path / "gone.wire"))
        output = self.render(error)
        assert "[GTK Error] Missing" in output
        assert "gone.wire:" not in output
