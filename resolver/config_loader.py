"""
Routing Core — Configuration Loader

Three-tier config loading with environment profile support:

  Tier 1: Base YAML (routing_config.yaml at the project root)
  Tier 2: Per-environment overlay files (config/{env}.yaml merged over base)
  Tier 3: Environment variable overrides (RC_* prefix)

Active environment is set via RC_ENV (default: "dev").
Config is loaded once and cached for the process lifetime.

Usage:
    from resolver.config_loader import load_config, get_config

    # Load explicitly
    config = load_config(env="prod", project_root=".")

    # Or use cached singleton
    config = get_config()

    # Access values
    core = config.get("rulebase.core_files", [])
    depth = config.get("routing.max_depth", 256)
"""

from __future__ import annotations

import copy
import logging
import os
import yaml
from pathlib import Path
from typing import Any

from resolver.errors import ConfigurationError

logger = logging.getLogger("routing_core.config")

DEFAULT_CONFIG_FILE = "routing_config.yaml"

# Defaults used when no base file is present. The base YAML shipped with the
# project mirrors these values.
DEFAULTS: dict[str, Any] = {
    "rulebase": {
        "root": ".",
        "rule_base_dir": "RuleBase",
        "bindings_dir": "ServiceAttributeBindings",
        "output_file": "Service.ruleml",
        "output_folder_prefix": "RuleFolder.",
        "core_files": [
            "CoreRuleBase.ruleml.xml",
            "NetworkFacts.ruleml.xml",
        ],
        "never_filter_files": [
            "ListofActiveServices.ruleml.xml",
            "RemoteHostMappings.ruleml.xml",
        ],
        "binding_suffix": "-CanonicalBindings.ruleml.xml",
        "rule_suffix": ".xml",
        "excluded_dirs": [".git", "target", "bin", "build"],
    },
    "routing": {
        "max_depth": 256,
        "monitor_service": "MonitorService",
    },
    "address": {
        "host": "127.0.0.1",
        "base_port": 10000,
        "channel_multiplier": 1000,
        "rule_base_port": 20000,
        "sync_base_port": 30000,
        "sync_channel_multiplier": 100,
    },
    "logging": {
        "level": "INFO",
    },
}


class ConfigLoader:
    """
    Layered config: built-in defaults, then the base YAML, then
    config/{env}.yaml, then RC_* environment variables. Later layers win.
    """

    def __init__(
        self,
        env: str = "dev",
        project_root: str = ".",
        base_files: list[str] | None = None,
    ):
        self.env = env
        self.project_root = Path(project_root)
        self.base_files = base_files or [DEFAULT_CONFIG_FILE]
        self._data: dict[str, Any] = {}
        self._source_log: list[str] = []
        self._loaded = False

    def load(self) -> dict[str, Any]:
        data = copy.deepcopy(DEFAULTS)
        self._source_log = ["defaults"]

        layers = [(f"base:{name}", self.project_root / name) for name in self.base_files]
        layers.append((f"overlay:config/{self.env}.yaml", self.project_root / "config" / f"{self.env}.yaml"))
        for label, path in layers:
            if path.exists():
                data = _deep_merge(data, _read_yaml(path))
                self._source_log.append(label)

        env_overrides = _load_env_overrides()
        if env_overrides:
            data = _deep_merge(data, env_overrides)
            self._source_log.append(f"env_vars({len(env_overrides)} keys)")

        data["_config_meta"] = {
            "env": self.env,
            "sources": self._source_log,
            "project_root": str(self.project_root),
        }
        self._data = data
        self._loaded = True
        logger.info("Config loaded: env=%s sources=%s", self.env, self._source_log)
        return self._data

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Value at a dotted path, e.g. config.get("rulebase.core_files", [])."""
        if not self._loaded:
            self.load()
        current: Any = self._data
        for k in dotted_key.split("."):
            if not isinstance(current, dict) or k not in current:
                return default
            current = current[k]
        return current

    @property
    def sources(self) -> list[str]:
        return list(self._source_log)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed config file {path}: {e}", path=str(path)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must hold a mapping", path=str(path))
    return data


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Overlay wins. Nested dicts merge; lists and scalars are replaced."""
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


# ═══════════════════════════════════════════════════════════════════
# RC_* environment overrides
# ═══════════════════════════════════════════════════════════════════

_ENV_MAPPINGS: dict[str, str] = {
    "RC_RULEBASE_ROOT": "rulebase.root",
    "RC_RULE_BASE_DIR": "rulebase.rule_base_dir",
    "RC_BINDINGS_DIR": "rulebase.bindings_dir",
    "RC_OUTPUT_FILE": "rulebase.output_file",
    "RC_MAX_DEPTH": "routing.max_depth",
    "RC_MONITOR_SERVICE": "routing.monitor_service",
    "RC_ADDRESS_HOST": "address.host",
    "RC_ADDRESS_BASE_PORT": "address.base_port",
    "RC_LOG_LEVEL": "logging.level",
}

_ARBITRARY_PREFIX = "RC_CONFIG__"


def _set_path(tree: dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    for k in parents:
        tree = tree.setdefault(k, {})
    tree[leaf] = value


def _load_env_overrides() -> dict[str, Any]:
    """Mapped RC_* variables plus RC_CONFIG__a__b=value for any dotted path a.b."""
    result: dict[str, Any] = {}
    for env_key, config_path in _ENV_MAPPINGS.items():
        if env_key in os.environ:
            _set_path(result, config_path, _auto_convert(os.environ[env_key]))
    for key, value in os.environ.items():
        if key.startswith(_ARBITRARY_PREFIX):
            dotted = key[len(_ARBITRARY_PREFIX):].lower().replace("__", ".")
            _set_path(result, dotted, _auto_convert(value))
    return result


def _auto_convert(value: str) -> Any:
    lowered = value.lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    for convert in (int, float):
        try:
            return convert(value)
        except ValueError:
            continue
    return value


# ═══════════════════════════════════════════════════════════════════
# Process-wide instance
# ═══════════════════════════════════════════════════════════════════

_instance: ConfigLoader | None = None


def get_config(env: str | None = None, project_root: str | None = None) -> ConfigLoader:
    """Cached loader; the first call fixes env (RC_ENV) and root (RC_PROJECT_ROOT)."""
    global _instance
    if _instance is None:
        _instance = ConfigLoader(
            env=env or os.environ.get("RC_ENV", "dev"),
            project_root=project_root or os.environ.get("RC_PROJECT_ROOT", "."),
        )
        _instance.load()
    return _instance


def load_config(
    env: str = "dev",
    project_root: str = ".",
    base_files: list[str] | None = None,
) -> ConfigLoader:
    """A fresh loader, independent of the cached one."""
    loader = ConfigLoader(env=env, project_root=project_root, base_files=base_files)
    loader.load()
    return loader


def reset_config():
    global _instance
    _instance = None
