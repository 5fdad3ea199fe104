"""Tests for Config, the ignore policy, directory listing, search and code definitions."""

import asyncio
import json
import sys
import os
import tempfile
from pathlib import Path
import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tooluse.code_definitions import (definitions_for_directory, definitions_for_file,
                                      extract_definitions, format_definitions)
from tooluse.config import Config
from tooluse.host import LocalFileSystem
from tooluse.ignore import IgnoreController
from tooluse.responses import LOCK_SYMBOL, format_files_list
from tooluse.workspace import list_files, regex_search_files
from fakes import write


# ============================================================
# Config
# ============================================================

class TestConfig:

    def test_defaults_validate(self):
        cfg = Config()
        assert cfg.max_read_file_line == 500
        assert cfg.fuzzy_match_threshold == 1.0
        assert cfg.validate()

    def test_from_dict_ignores_unknown_keys(self):
        cfg = Config.from_dict({"model": "gpt-4o", "auto_approve": ["read"], "bogus": 1},
                               workspace=Path("/tmp"))
        assert cfg.model == "gpt-4o"
        assert cfg.auto_approve == ["read"]
        assert cfg.workspace_path == Path("/tmp")

    def test_workspace_overrides_global(self, monkeypatch):
        with tempfile.TemporaryDirectory() as home, tempfile.TemporaryDirectory() as ws:
            monkeypatch.setenv("HOME", home)
            Path(home, ".tooluse.json").write_text(json.dumps({"model": "global", "list_files_limit": 7}))
            write(ws, ".tooluse/config.json", json.dumps({"model": "local"}))
            cfg = Config.from_json(Path(ws))
            assert cfg.model == "local"
            assert cfg.list_files_limit == 7

    def test_from_env(self, monkeypatch):
        with tempfile.TemporaryDirectory() as home, tempfile.TemporaryDirectory() as ws:
            monkeypatch.setenv("HOME", home)
            for var in ("TOOLUSE_MODEL", "TOOLUSE_AUTO_APPROVE", "TOOLUSE_MISTAKE_LIMIT"):
                monkeypatch.delenv(var, raising=False)
            monkeypatch.setenv("TOOLUSE_WORKSPACE", ws)
            monkeypatch.setenv("TOOLUSE_AUTO_APPROVE", "read, write")
            env_file = Path(ws) / ".env"
            env_file.write_text("TOOLUSE_MISTAKE_LIMIT=5\n")
            cfg = Config.from_env(env_file)
            assert cfg.auto_approve == ["read", "write"]
            assert cfg.consecutive_mistake_limit == 5
            assert cfg.workspace_path == Path(ws)
            os.environ.pop("TOOLUSE_MISTAKE_LIMIT", None)

    @pytest.mark.parametrize("field,value,message", [
        ("context_window", 0, "context_window"),
        ("fuzzy_match_threshold", 1.5, "fuzzy_match_threshold"),
        ("consecutive_mistake_limit", 0, "consecutive_mistake_limit"),
        ("auto_approve", ["everything"], "Unknown auto_approve"),
    ])
    def test_validate_rejects(self, field, value, message):
        cfg = Config()
        setattr(cfg, field, value)
        with pytest.raises(ValueError, match=message):
            cfg.validate()


# ============================================================
# Ignore policy
# ============================================================

class TestIgnoreController:

    def make(self, ws, *patterns):
        controller = IgnoreController(ws)
        controller.set_patterns(patterns)
        return controller

    def test_no_file_allows_everything(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = IgnoreController(ws)
            assert not controller.active
            assert controller.validate_access("secrets.env")

    def test_loads_file(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, ".tooluseignore", "# comment\n*.env\n")
            controller = IgnoreController(ws)
            assert not controller.validate_access("prod.env")
            assert controller.validate_access("main.py")

    def test_directory_and_negation(self):
        with tempfile.TemporaryDirectory() as ws:
            os.makedirs(os.path.join(ws, "build"))
            controller = self.make(ws, "build/", "*.log", "!keep.log")
            assert not controller.validate_access("build/out.js")
            assert not controller.validate_access("debug.log")
            assert controller.validate_access("keep.log")

    def test_anchored_pattern(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "/config/secret.json")
            assert not controller.validate_access("config/secret.json")
            assert controller.validate_access("other/config/secret.json")

    def test_single_star_stops_at_slash(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "src/*.py")
            assert not controller.validate_access("src/a.py")
            assert controller.validate_access("src/a/b.py")

    def test_double_star_matches_any_depth(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "**/secrets")
            assert not controller.validate_access("secrets")
            assert not controller.validate_access("app/config/secrets")
            assert not controller.validate_access("app/secrets/key.pem")
            assert controller.validate_access("app/secrets.txt")

    def test_comments_only_is_inactive(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "# nothing here", "")
            assert not controller.active
            assert controller.validate_access("anything.env")

    def test_outside_workspace_never_blocked(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "*")
            assert controller.validate_access("/etc/hosts")

    def test_validate_command(self):
        with tempfile.TemporaryDirectory() as ws:
            controller = self.make(ws, "*.env")
            assert controller.validate_command("cat prod.env") == "prod.env"
            assert controller.validate_command("head -n 5 prod.env") == "prod.env"
            assert controller.validate_command("cat main.py") is None
            assert controller.validate_command("python prod.env") is None


# ============================================================
# Listing and search
# ============================================================

class TestWorkspace:

    def test_list_top_level(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.txt", "")
            write(ws, "src/b.py", "")
            files, hit = list_files(ws, recursive=False, limit=100)
            assert not hit
            assert os.path.join(ws, "a.txt") in files
            assert os.path.join(ws, "src") + "/" in files
            assert os.path.join(ws, "src", "b.py") not in files

    def test_list_recursive_skips_vendor_dirs(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "src/b.py", "")
            write(ws, "node_modules/x/index.js", "")
            files, _ = list_files(ws, recursive=True, limit=100)
            assert os.path.join(ws, "src", "b.py") in files
            assert os.path.join(ws, "node_modules") + "/" in files
            assert not any("index.js" in f for f in files)

    def test_list_limit(self):
        with tempfile.TemporaryDirectory() as ws:
            for i in range(5):
                write(ws, f"f{i}.txt", "")
            files, hit = list_files(ws, recursive=False, limit=3)
            assert hit
            assert len(files) == 3

    def test_format_files_list_marks_ignored(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.py", "")
            write(ws, "secret.env", "")
            controller = IgnoreController(ws)
            controller.set_patterns(["*.env"])
            files, hit = list_files(ws, recursive=False, limit=100)
            shown = format_files_list(ws, files, hit, controller, show_ignored=True)
            assert "a.py" in shown
            assert f"{LOCK_SYMBOL} secret.env" in shown
            hidden = format_files_list(ws, files, hit, controller, show_ignored=False)
            assert "secret.env" not in hidden

    def test_format_empty(self):
        assert format_files_list("/nowhere", [], False) == "No files found."

    def test_regex_search(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "src/app.py", "import os\n\ndef main():\n    return 1\n")
            write(ws, "README.md", "def main is documented here\n")
            out = regex_search_files(ws, ws, r"def main", file_pattern="*.py")
            assert out.startswith("Found 1 result.")
            assert "# src/app.py" in out
            assert "  3 | def main():" in out
            assert "README" not in out

    def test_regex_search_no_match(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.py", "x = 1\n")
            assert regex_search_files(ws, ws, "nothing") == "Found 0 results."

    def test_regex_search_limit(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "a.txt", "hit\n" * 10)
            out = regex_search_files(ws, ws, "hit", limit=3)
            assert out.startswith("Showing first 3 of 3+ results.")


# ============================================================
# Code definitions
# ============================================================

PY_SOURCE = '''\
import os


class Greeter:
    def greet(self, name):
        return f"hi {name}"


async def main():
    def inner():
        pass
    return Greeter().greet("x")
'''


class TestCodeDefinitions:

    def test_python_definitions(self):
        defs = extract_definitions("g.py", PY_SOURCE)
        texts = [d.text.strip() for d in defs]
        assert texts == ["class Greeter:", "def greet(self, name):", "async def main():"]
        assert defs[0].start_line == 4
        assert defs[0].end_line == 6

    def test_regex_fallback(self):
        defs = extract_definitions("a.ts", "export function run() {\n}\nconst f = (x) => x\n")
        assert [d.start_line for d in defs] == [1, 3]

    def test_format(self):
        out = format_definitions("g.py", extract_definitions("g.py", PY_SOURCE))
        assert out.startswith("# g.py\n4--6 | class Greeter:")
        assert format_definitions("x.py", []) is None

    def test_for_file_and_directory(self):
        with tempfile.TemporaryDirectory() as ws:
            write(ws, "g.py", PY_SOURCE)
            write(ws, "notes.txt", "class NotCode")
            fs = LocalFileSystem()
            single = asyncio.run(definitions_for_file(os.path.join(ws, "g.py"), fs))
            assert "class Greeter" in single
            assert asyncio.run(definitions_for_file(os.path.join(ws, "notes.txt"), fs)) is None
            listing = asyncio.run(definitions_for_directory(ws, fs))
            assert "# g.py" in listing
            assert "notes.txt" not in listing

    def test_directory_without_sources(self):
        with tempfile.TemporaryDirectory() as ws:
            out = asyncio.run(definitions_for_directory(ws, LocalFileSystem()))
            assert out == "No source code definitions found."
