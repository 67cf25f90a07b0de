import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

from dtdscan.core.type_registry import DEFAULT_REGISTRY
from dtdscan.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "version": 1,
    "rules": {
        "enabled": [
            "CA3075",
        ],
        "severities": {
            "CA3075": "warning",
        },
    },
    "languages": {
        "enabled": [
            "csharp",
            "vbnet",
        ]
    },
    "registry": DEFAULT_REGISTRY,
    "engine": {
        "max_workers": 4,
        "max_file_size": 10 * 1024 * 1024,
    },
    "suppression": {
        "inline_comment": "dtdscan:ignore",
    },
    "reporting": {
        "format": "text",
        "fail_on_severity": "warning",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@dataclass(frozen=True)
class Config:
    data: Dict[str, Any]

    @classmethod
    def load(cls, path: "str | None") -> "Config":
        if not path:
            return cls(DEFAULT_CONFIG)
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {path}")
        raw = config_path.read_text(encoding="utf-8")
        try:
            if config_path.suffix.lower() in {".json"}:
                overrides = json.loads(raw)
            else:
                overrides = yaml.safe_load(raw) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ConfigError(f"Could not parse config file {path}: {exc}") from exc
        if not isinstance(overrides, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        logger.debug("Loaded configuration overrides from %s", path)
        return cls.from_dict(overrides)

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> "Config":
        return cls(_deep_merge(DEFAULT_CONFIG, overrides))

    def rule_enabled(self, rule_id: str) -> bool:
        enabled = set(self.data.get("rules", {}).get("enabled", []))
        return rule_id in enabled

    def rule_severities(self) -> Dict[str, Any]:
        return self.data.get("rules", {}).get("severities", {})

    def rule_severity(self, rule_id: str) -> str:
        return self.data.get("rules", {}).get("severities", {}).get(rule_id, "warning")

    def languages(self) -> set:
        return set(self.data.get("languages", {}).get("enabled", []))

    def registry(self) -> Dict[str, Any]:
        return self.data.get("registry", DEFAULT_REGISTRY)

    def max_workers(self) -> int:
        return int(self.data.get("engine", {}).get("max_workers", 4))

    def max_file_size(self) -> int:
        return int(self.data.get("engine", {}).get("max_file_size", 10 * 1024 * 1024))

    def suppression_marker(self) -> str:
        return self.data.get("suppression", {}).get("inline_comment", "dtdscan:ignore")

    def reporting(self) -> Dict[str, Any]:
        return self.data.get("reporting", {})
