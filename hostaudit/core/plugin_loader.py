"""
Probe Loader for hostaudit
Builds the ordered probe list from the built-in registry and plugin files
"""

import importlib.util
import inspect
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .model import Probe

logger = logging.getLogger(__name__)

REQUIRED_METADATA = ("name", "description")


class ProbeLoader:
    """Loads and manages audit probes."""

    def __init__(self, plugins_dir: Optional[str] = "plugins", builtin_probes: Optional[Iterable[Probe]] = None):
        self.plugins_dir = Path(plugins_dir) if plugins_dir else None
        if builtin_probes is None:
            from hostaudit.probes import BUILTIN_PROBES
            builtin_probes = BUILTIN_PROBES
        self.builtin_probes: List[Probe] = list(builtin_probes)
        self.loaded_plugins: Dict[str, Probe] = {}
        self.logger = logging.getLogger(__name__)

    def discover_plugins(self) -> List[str]:
        """Discover available plugin files."""
        plugin_files = []

        if self.plugins_dir is None:
            return plugin_files

        if not self.plugins_dir.exists():
            self.logger.warning(f"Plugins directory {self.plugins_dir} does not exist")
            return plugin_files

        for plugin_file in sorted(self.plugins_dir.glob("*.py")):
            if plugin_file.name.startswith("_"):
                continue
            plugin_files.append(plugin_file.stem)

        self.logger.info(f"Discovered {len(plugin_files)} plugins: {plugin_files}")
        return plugin_files

    def load_plugin(self, plugin_name: str) -> bool:
        """Load a single plugin file by name."""
        try:
            plugin_path = self.plugins_dir / f"{plugin_name}.py"
            if not plugin_path.exists():
                self.logger.error(f"Plugin file not found: {plugin_path}")
                return False

            spec = importlib.util.spec_from_file_location(f"hostaudit_plugin_{plugin_name}", plugin_path)
            if spec is None or spec.loader is None:
                self.logger.error(f"Could not load spec for plugin: {plugin_name}")
                return False

            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)

            if not hasattr(module, "METADATA"):
                self.logger.error(f"Plugin {plugin_name} missing METADATA")
                return False

            if not hasattr(module, "run") or not callable(module.run):
                self.logger.error(f"Plugin {plugin_name} missing run function")
                return False

            metadata = module.METADATA
            if not isinstance(metadata, dict) or not all(metadata.get(k) for k in REQUIRED_METADATA):
                self.logger.error(f"Plugin {plugin_name} metadata must provide: {', '.join(REQUIRED_METADATA)}")
                return False

            # Probes run on worker threads; coroutines would never be awaited
            if inspect.iscoroutinefunction(module.run):
                self.logger.error(f"Plugin {plugin_name} run function must be synchronous")
                return False

            name = str(metadata["name"])
            if name in self.loaded_plugins or any(p.name == name for p in self.builtin_probes):
                self.logger.error(f"Plugin {plugin_name} declares duplicate probe name: {name}")
                return False

            self.loaded_plugins[name] = Probe(
                name=name,
                description=str(metadata["description"]),
                run=module.run,
                source=str(plugin_path),
            )

            self.logger.info(f"Successfully loaded plugin: {name}")
            return True

        except Exception as e:
            self.logger.error(f"Error loading plugin {plugin_name}: {e}")
            return False

    def load_all_plugins(self) -> int:
        """Load all discovered plugins."""
        plugin_names = self.discover_plugins()
        loaded_count = 0

        for plugin_name in plugin_names:
            if self.load_plugin(plugin_name):
                loaded_count += 1

        if plugin_names:
            self.logger.info(f"Loaded {loaded_count}/{len(plugin_names)} plugins")
        return loaded_count

    def all_probes(self) -> List[Probe]:
        """Built-in probes first, then plugins in discovery order."""
        return self.builtin_probes + list(self.loaded_plugins.values())

    def get_probe(self, name: str) -> Optional[Probe]:
        for probe in self.all_probes():
            if probe.name == name:
                return probe
        return None

    def select(self, names: Optional[Iterable[str]] = None) -> List[Probe]:
        """Probes matching `names` in registry order; empty or None means all."""
        probes = self.all_probes()
        wanted = [n.strip().lower() for n in (names or []) if n and n.strip()]
        if not wanted or "all" in wanted:
            return probes

        known = {p.name.lower() for p in probes}
        for name in wanted:
            if name not in known:
                self.logger.warning(f"Unknown probe module requested: {name}")

        return [p for p in probes if p.name.lower() in wanted]

    def get_probe_stats(self) -> Dict[str, Any]:
        """Get statistics about registered probes."""
        return {
            "total_probes": len(self.all_probes()),
            "builtin": len(self.builtin_probes),
            "plugins": len(self.loaded_plugins),
            "names": [p.name for p in self.all_probes()],
        }
