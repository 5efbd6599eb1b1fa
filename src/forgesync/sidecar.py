"""Sidecar configuration — layered overrides for agent deployment.

A module may ship ``config.yaml`` (user-owned) or ``defaults.yaml``
(module-owned) next to its ``agents/`` directory. ``config.yaml`` wins when
both exist. The recognised shape::

    shared:
      models:
        fast: sonnet
        strong: opus
    providers:
      gemini:
        models:
          fast: gemini-2.5-flash
          strong: gemini-2.5-pro
        whitelist:
          - gemini-2.5-flash
          - gemini-2.5-pro
      codex:
        reasoning_effort:
          strong: high
    agents:
      SecurityArchitect:
        model: strong
        tools:
          - Read
          - Grep
    skills:
      code-review:
        scope: workspace

The older flat layout (top-level ``models:`` and top-level ``<AgentName>:``
blocks) is still understood.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

import yaml

from .models import ModelTiers
from .provider import Provider

logger = logging.getLogger("forgesync.sidecar")

SIDECAR_FILES = ("config.yaml", "defaults.yaml")
TIERS = ("fast", "strong")
TIER_ENV_VARS = {"fast": "MODEL_MAP_FAST", "strong": "MODEL_MAP_STRONG"}
DEFAULT_TIERS = ModelTiers()
RESERVED_SECTIONS = frozenset({"shared", "models", "providers", "agents", "skills"})

SidecarValue = Union[str, list, dict]
TierLookup = Callable[[str, Provider], Optional[str]]


def parse_sidecar(text: str) -> dict[str, Any]:
    """Parse sidecar content into nested dicts and lists.

    Args:
        text: Sidecar file content.

    Returns:
        dict: The loaded mapping, or ``{}`` when the document is empty or
            not a mapping.

    Raises:
        yaml.YAMLError: If the content is not valid YAML.
    """
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        return {}
    return data


def _scalar(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def _as_string(value: Any) -> Optional[str]:
    """Normalise a sidecar leaf to a string; lists join with ``", "``."""
    if isinstance(value, list):
        items = [item for item in (_scalar(v) for v in value) if item]
        return ", ".join(items) if items else None
    return _scalar(value)

class SidecarConfig:
    """Read-only overlay configuration for one deployment run.

    Args:
        data: Parsed sidecar mapping (empty when no sidecar file exists).
        path: The file the data came from, for diagnostics.
        environ: Environment used for tier overrides (default: ``os.environ``).
    """

    def __init__(
        self,
        data: Optional[dict[str, Any]] = None,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.data: dict[str, Any] = data or {}
        self.path = path
        self._environ = environ

    @classmethod
    def load(cls, module_root: Path, environ: Optional[Mapping[str, str]] = None) -> "SidecarConfig":
        """Load ``config.yaml``, else ``defaults.yaml``, from ``module_root``.

        A missing sidecar is not an error: every query then falls through to
        built-in defaults.
        """
        for filename in SIDECAR_FILES:
            path = module_root / filename
            if not path.is_file():
                continue
            try:
                text = path.read_text(encoding="utf-8")
                data = parse_sidecar(text)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Ignoring unreadable sidecar %s: %s", path, exc)
                return cls(path=path, environ=environ)
            except yaml.YAMLError as exc:
                logger.warning("Ignoring invalid sidecar %s: %s", path, exc)
                return cls(path=path, environ=environ)
            logger.debug("Loaded sidecar %s", path)
            return cls(data, path=path, environ=environ)
        return cls(environ=environ)

    @classmethod
    def from_text(cls, text: str, environ: Optional[Mapping[str, str]] = None) -> "SidecarConfig":
        return cls(parse_sidecar(text), environ=environ)

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def navigate(self, *keys: str) -> Optional[SidecarValue]:
        """Walk nested mappings; None when any step is missing."""
        current: Any = self.data
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                return None
            current = current[key]
        return current

    # ── Model tiers ──────────────────────────────────────────────────────

    def _env_tier(self, tier: str, provider: Provider) -> Optional[str]:
        var = TIER_ENV_VARS.get(tier)
        return (self.environ.get(var) or None) if var else None

    def _provider_tier(self, tier: str, provider: Provider) -> Optional[str]:
        return _as_string(self.navigate("providers", provider.value, "models", tier))

    def _global_tier(self, tier: str, provider: Provider) -> Optional[str]:
        return _as_string(self.navigate("shared", "models", tier)) or _as_string(
            self.navigate("models", tier)
        )

    def _default_tier(self, tier: str, provider: Provider) -> Optional[str]:
        return DEFAULT_TIERS.get(tier)

    def tier_chain(self) -> list[tuple[str, TierLookup]]:
        """Lookups tried in order when resolving a tier; the first hit wins."""
        return [
            ("environment", self._env_tier),
            ("provider", self._provider_tier),
            ("global", self._global_tier),
            ("default", self._default_tier),
        ]

    def resolve_tier(self, tier: str, provider: Provider = Provider.CLAUDE) -> str:
        """Concrete model identifier for ``fast`` or ``strong``."""
        for source, lookup in self.tier_chain():
            value = lookup(tier, provider)
            if value:
                logger.debug("Tier %s for %s resolved from %s: %s", tier, provider.value, source, value)
                return value
        return DEFAULT_TIERS.get(tier)

    def global_tiers(self) -> ModelTiers:
        """Tiers from the sidecar's global block (no environment, no provider)."""
        return ModelTiers(
            fast=self._global_tier("fast", Provider.CLAUDE) or DEFAULT_TIERS.fast,
            strong=self._global_tier("strong", Provider.CLAUDE) or DEFAULT_TIERS.strong,
        )

    def provider_tiers(self, provider: Provider) -> ModelTiers:
        """Fully resolved tiers for ``provider``."""
        return ModelTiers(
            fast=self.resolve_tier("fast", provider),
            strong=self.resolve_tier("strong", provider),
        )

    def resolve_model(self, model: str, provider: Provider = Provider.CLAUDE) -> str:
        """Substitute tier names; concrete identifiers pass through untouched."""
        if model in TIERS:
            return self.resolve_tier(model, provider)
        return model

    def whitelist(self, provider: Provider) -> Optional[list[str]]:
        """The provider's model allow-list, or None when it declares none."""
        value = self.navigate("providers", provider.value, "whitelist")
        if not isinstance(value, list):
            return None
        return [item for item in (_scalar(v) for v in value) if item]

    def is_model_whitelisted(self, provider: Provider, model: str) -> bool:
        allowed = self.whitelist(provider)
        return allowed is None or model in allowed

    def provider_reasoning_effort(self, provider: Provider, tier: str) -> Optional[str]:
        return _as_string(self.navigate("providers", provider.value, "reasoning_effort", tier))

    # ── Per-agent and per-skill overrides ────────────────────────────────

    def _block_value(self, section: str, name: str, key: str) -> Optional[str]:
        value = _as_string(self.navigate(section, name, key))
        if value is None and name not in RESERVED_SECTIONS:
            value = _as_string(self.navigate(name, key))
        return value

    def agent_value(self, agent: str, key: str) -> Optional[str]:
        """Override for ``agent`` (``agents.<agent>.<key>`` or ``<agent>.<key>``)."""
        return self._block_value("agents", agent, key)

    def skill_value(self, skill: str, key: str) -> Optional[str]:
        """Override for ``skill`` (``skills.<skill>.<key>`` or ``<skill>.<key>``)."""
        return self._block_value("skills", skill, key)
