"""
metastage: a runtime metaobject protocol over a staged symbol registry.

The package lets a running program create, mutate and introspect classes,
attributes and methods, and controls how generated or loaded code becomes
visible under a name and at which phase.

The code is organised into several modules:

* ``symbols`` – the process-wide registry mapping
  ``(namespace, name, kind)`` to live entities.
* ``runtime`` – the phase scheduler modelling the definition phase
  (declarations run immediately) and the run phase (ordinary sequential
  statements).
* ``codegen`` – the two code generation strategies: source synthesis
  compiled against a namespace, and once-compiled closure templates.
* ``meta`` – class descriptors and the metaobject protocol built on the
  registry and the closure factory.
* ``modules`` – the loader that maps a dotted namespace path to source,
  runs its definition phase and handles import/export between namespaces.
* ``cli`` – a small command line driver around the loader.
"""

import re
from pathlib import Path
from importlib import metadata as _metadata


def _local_version() -> str | None:
    root = Path(__file__).resolve().parents[1]
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        return None
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:  # pragma: no cover - IO errors should not break imports
        return None
    match = re.search(r"^version\s*=\s*\"([^\"]+)\"", text, flags=re.MULTILINE)
    if match:
        return match.group(1)
    return None


try:  # pragma: no cover - metadata fallback for editable installs
    __version__ = _metadata.version("metastage")
except _metadata.PackageNotFoundError:  # pragma: no cover - source tree
    __version__ = _local_version() or "0.1.0"

__all__ = ["__version__"]
