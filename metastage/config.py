"""Workspace configuration support for the metastage loader and CLI."""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


CONFIG_FILENAMES = ("metastage.toml", ".metastagerc")


@dataclass
class LoaderSettings:
    """Where units are looked up and which namespace receives imports by default."""

    search_paths: List[Path] = field(default_factory=list)
    extensions: List[str] = field(default_factory=lambda: [".py"])
    import_target: str = "main"


@dataclass
class LoggingSettings:
    level: str = "warning"


@dataclass
class WorkspaceConfig:
    """Resolved workspace configuration."""

    root: Path
    loader: LoaderSettings = field(default_factory=LoaderSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    raw: Dict[str, Any] = field(default_factory=dict)

    def effective_search_paths(self) -> List[Path]:
        return list(self.loader.search_paths) or [self.root]


def _read_json_config(path: Path) -> Dict[str, Any]:
    content = path.read_text(encoding="utf-8")
    return json.loads(content)


def _read_toml_config(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _string_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    if isinstance(value, str):
        return [value]
    return []


def _parse_loader(data: Dict[str, Any], root: Path) -> LoaderSettings:
    section = data.get("loader") or {}
    search_paths = []
    for entry in _string_list(section.get("search_paths")):
        path = Path(os.path.expandvars(entry))
        if not path.is_absolute():
            path = (root / path).resolve()
        search_paths.append(path)
    extensions = _string_list(section.get("extensions")) or list(LoaderSettings().extensions)
    extensions = [ext if ext.startswith(".") else f".{ext}" for ext in extensions]
    import_target = str(section.get("import_target") or LoaderSettings.import_target)
    return LoaderSettings(search_paths=search_paths, extensions=extensions, import_target=import_target)


def _parse_logging(data: Dict[str, Any]) -> LoggingSettings:
    section = data.get("logging") or {}
    return LoggingSettings(level=str(section.get("level") or LoggingSettings.level).lower())


def locate_config_file(root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    if explicit is not None:
        return explicit if explicit.exists() else None
    for candidate in CONFIG_FILENAMES:
        path = root / candidate
        if path.exists():
            return path
    return None


def load_workspace_config(root: Path, explicit: Optional[Path] = None) -> WorkspaceConfig:
    root = root.resolve()
    config_path = locate_config_file(root, explicit)
    if config_path is None:
        return WorkspaceConfig(root=root)

    if config_path.suffix == ".toml":
        data = _read_toml_config(config_path)
    else:
        data = _read_json_config(config_path)

    return WorkspaceConfig(
        root=root,
        loader=_parse_loader(data, root),
        logging=_parse_logging(data),
        raw=data,
    )


def apply_cli_overrides(
    config: WorkspaceConfig,
    *,
    search_paths: Optional[Sequence[str]] = None,
    import_target: Optional[str] = None,
    log_level: Optional[str] = None,
) -> WorkspaceConfig:
    loader = LoaderSettings(
        search_paths=[Path(p).resolve() for p in search_paths] if search_paths else list(config.loader.search_paths),
        extensions=list(config.loader.extensions),
        import_target=import_target or config.loader.import_target,
    )
    logging_settings = LoggingSettings(level=(log_level or config.logging.level).lower())
    return WorkspaceConfig(root=config.root, loader=loader, logging=logging_settings, raw=config.raw)
