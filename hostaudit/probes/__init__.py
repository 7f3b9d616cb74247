"""
hostaudit built-in probes
Each module exposes METADATA and a synchronous run(context), like plugin files
"""

from hostaudit.core.model import Probe

from . import container, credentials, filesystem, network, services, software, system

PROBE_MODULES = (system, filesystem, software, credentials, services, network, container)


def _as_probe(module) -> Probe:
    return Probe(
        name=module.METADATA["name"],
        description=module.METADATA["description"],
        run=module.run,
    )


BUILTIN_PROBES = tuple(_as_probe(module) for module in PROBE_MODULES)

__all__ = ["BUILTIN_PROBES", "PROBE_MODULES"]
