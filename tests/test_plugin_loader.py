import inspect
import textwrap
from pathlib import Path

import pytest

from hostaudit.core.model import Probe
from hostaudit.core.plugin_loader import ProbeLoader
from hostaudit.probes import BUILTIN_PROBES

REPO_PLUGINS = Path(__file__).resolve().parent.parent / "plugins"


def write_plugin(directory, name, body):
    path = directory / f"{name}.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def test_builtin_probes_have_metadata_and_sync_run():
    names = [probe.name for probe in BUILTIN_PROBES]
    assert names == ["system", "filesystem", "software", "credentials", "services", "network", "container"]
    for probe in BUILTIN_PROBES:
        assert probe.description
        assert callable(probe.run)
        assert not inspect.iscoroutinefunction(probe.run)


def test_bundled_example_plugin_loads():
    loader = ProbeLoader(str(REPO_PLUGINS))
    assert loader.load_all_plugins() == 1
    probe = loader.get_probe("example_check")
    assert probe is not None
    assert probe.source.endswith("example_check.py")


class TestProbeLoader:
    """Plugin discovery, validation and selection."""

    @pytest.fixture
    def plugins_dir(self, tmp_path):
        write_plugin(tmp_path, "good", """
            METADATA = {"name": "good_check", "description": "A valid plugin"}

            def run(context):
                context.emit("INFO", "hello", "world")
        """)
        write_plugin(tmp_path, "no_metadata", """
            def run(context):
                pass
        """)
        write_plugin(tmp_path, "async_run", """
            METADATA = {"name": "async_check", "description": "Coroutine run"}

            async def run(context):
                pass
        """)
        write_plugin(tmp_path, "syntax_error", "def run(:\n")
        write_plugin(tmp_path, "duplicate", """
            METADATA = {"name": "system", "description": "Shadows a builtin"}

            def run(context):
                pass
        """)
        write_plugin(tmp_path, "_private", """
            METADATA = {"name": "private", "description": "Ignored"}

            def run(context):
                pass
        """)
        return tmp_path

    def test_only_valid_plugins_are_loaded(self, plugins_dir):
        loader = ProbeLoader(str(plugins_dir))
        assert loader.load_all_plugins() == 1
        assert list(loader.loaded_plugins) == ["good_check"]

    def test_discovery_skips_private_files(self, plugins_dir):
        loader = ProbeLoader(str(plugins_dir))
        assert "_private" not in loader.discover_plugins()

    def test_plugins_follow_builtins(self, plugins_dir):
        loader = ProbeLoader(str(plugins_dir))
        loader.load_all_plugins()
        names = [p.name for p in loader.all_probes()]
        assert names[:7] == ["system", "filesystem", "software", "credentials", "services", "network", "container"]
        assert names[-1] == "good_check"

    def test_missing_directory_is_not_fatal(self, tmp_path):
        loader = ProbeLoader(str(tmp_path / "absent"))
        assert loader.load_all_plugins() == 0
        assert len(loader.all_probes()) == len(BUILTIN_PROBES)

    def test_plugins_disabled(self):
        loader = ProbeLoader(None)
        assert loader.discover_plugins() == []

    def test_select(self):
        loader = ProbeLoader(None)
        assert [p.name for p in loader.select(["software", "SYSTEM"])] == ["system", "software"]
        assert len(loader.select(None)) == len(BUILTIN_PROBES)
        assert len(loader.select(["all"])) == len(BUILTIN_PROBES)
        assert loader.select(["nonexistent"]) == []

    def test_custom_builtin_registry(self):
        probe = Probe("only", "single probe", run=lambda context: None)
        loader = ProbeLoader(None, builtin_probes=[probe])
        assert loader.all_probes() == [probe]
        assert loader.get_probe_stats() == {
            "total_probes": 1,
            "builtin": 1,
            "plugins": 0,
            "names": ["only"],
        }
