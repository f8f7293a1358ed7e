"""
YAML config files for remsync.

A run may see several config files: an explicit ``$REMSYNC_CONFIG``, a
project file under ``./.remsync/`` and a per-user file under the XDG
config directory.  They are merged section by section, so a project file
that only sets ``store.path`` still inherits ``remote.device_token`` from
the per-user file.

Files may pull in other files with ``!include`` and reference the
environment with ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from remsync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".remsync"
CONFIG_FILE_NAMES = ("config.yml", "config.yaml")

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  A ``${`` without a closing brace is kept as written.
    """
    return _ENV_REF.sub(
        lambda m: os.environ.get(m["name"]) or (m["default"] or ""), value
    )


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {key: _interpolate_recursive(val) for key, val in obj.items()}
    if isinstance(obj, list):
        return list(map(_interpolate_recursive, obj))
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    return obj


# ---------------------------------------------------------------------------
# Reading one file
# ---------------------------------------------------------------------------


class IncludingLoader(yaml.SafeLoader):
    """SafeLoader that understands ``!include <path>``.

    *chain* holds the files currently being read, outermost first, so an
    include that loops back is reported instead of recursing forever.
    Registering the tag on this subclass leaves ``yaml.safe_load`` alone.
    """

    def __init__(self, stream, chain: tuple[Path, ...]) -> None:
        super().__init__(stream)
        self.chain = chain

    def construct_include(self, node: yaml.ScalarNode) -> Any:
        current = self.chain[-1]
        target = Path(self.construct_scalar(node)).expanduser()
        if not target.is_absolute():
            target = current.parent / target
        target = target.resolve()

        if target in self.chain:
            loop = " -> ".join(map(str, self.chain + (target,)))
            raise ValueError(f"Circular include detected: {loop}")
        if not target.is_file():
            raise FileNotFoundError(
                f"Include file not found: {target} (from {current})"
            )
        return _read_yaml(target, self.chain + (target,))


IncludingLoader.add_constructor("!include", IncludingLoader.construct_include)


def _read_yaml(path: Path, chain: tuple[Path, ...]) -> Any:
    with open(path, encoding="utf-8") as fh:
        loader = IncludingLoader(fh, chain)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


def _load_yaml_with_includes(path: Path) -> Any:
    """Parse the YAML file at *path*, following ``!include`` tags."""
    path = Path(path).resolve()
    return _read_yaml(path, (path,))


# ---------------------------------------------------------------------------
# Finding files
# ---------------------------------------------------------------------------


def _user_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "remsync"


def _candidate_paths() -> list[Path]:
    candidates: list[Path] = []
    explicit = os.environ.get("REMSYNC_CONFIG")
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    project_dir = Path.cwd() / CONFIG_DIR_NAME
    candidates.extend(project_dir / name for name in CONFIG_FILE_NAMES)
    candidates.append(_user_config_dir() / CONFIG_FILE_NAMES[0])
    return candidates


def discover_config_files() -> list[Path]:
    """Existing config files, highest precedence first.

    Looked for, in order: ``$REMSYNC_CONFIG``, ``./.remsync/config.yml``,
    ``./.remsync/config.yaml`` and ``$XDG_CONFIG_HOME/remsync/config.yml``
    (``~/.config`` when ``XDG_CONFIG_HOME`` is unset).
    """
    return [path for path in _candidate_paths() if path.is_file()]


def resolve_config_path() -> Path:
    """The config file ``init`` would point at: the active one, if any,
    else ``./.remsync/config.yml``.  Nothing is created."""
    found = discover_config_files()
    return found[0] if found else Path.cwd() / CONFIG_DIR_NAME / "config.yml"


# ---------------------------------------------------------------------------
# Starter file
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# remsync configuration
#
# Every remote setting can also come from the environment:
#   REMSYNC_AUTH_SERVER, REMSYNC_DISCOVERY_SERVER, REMSYNC_DEVICE_TOKEN,
#   REMSYNC_MAX_PARALLEL_FETCHES, REMSYNC_TIMEOUT, REMSYNC_DEBUG
# Values set here may reference the environment as ${VAR:-default}.
#
# remote:
#   auth_server: https://my.remarkable.com/
#   discovery_server: https://service-manager-production-dot-remarkable-production.appspot.com/
#   device_token: ${REMSYNC_DEVICE_TOKEN}
#   max_parallel_fetches: 4
#   timeout: 60
#
# store:
#   path: ~/remarkable
#
# logging:
#   level: INFO
#   format: text
#   file: null
"""


def ensure_config(target: Path | None = None) -> tuple[Path, bool]:
    """Write the starter config unless a config file is already in use.

    Args:
        target: Where to write it.  Defaults to ``resolve_config_path()``.

    Returns:
        ``(path, created)``.  *created* is ``False`` when an existing file
        was found, in which case that file is returned untouched.
    """
    found = discover_config_files()
    if found:
        logger.debug("Using existing config file %s", found[0])
        return found[0], False

    path = target or resolve_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Wrote starter config to %s", path)
    return path, True


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------


def _merge_into(merged: dict[str, Any], data: dict[str, Any]) -> None:
    """Overlay *data* on *merged*, one level deep.

    Mapping sections are merged key by key; anything else replaces the
    lower value outright.
    """
    for section, value in data.items():
        lower = merged.get(section)
        if isinstance(lower, dict) and isinstance(value, dict):
            merged[section] = {**lower, **value}
        else:
            merged[section] = value


def load_hierarchical_config() -> dict[str, Any]:
    """Read every discovered config file and merge them.

    Lower-precedence files are applied first.  ``${VAR}`` references are
    expanded once the merge is done, so a reference may come from one file
    and be overridden in another.  Returns ``{}`` when there are no files.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Reading config file %s", path)
        data = _load_yaml_with_includes(path)
        if isinstance(data, dict):
            _merge_into(merged, data)
        elif data is not None:
            logger.warning(
                "Ignoring config file %s: top level is a %s, not a mapping",
                path,
                type(data).__name__,
            )
    return _interpolate_recursive(merged)
