"""Tests for sidecar parsing and model tier resolution."""

from pathlib import Path
from textwrap import dedent

import pytest
import yaml

from forgesync.provider import Provider
from forgesync.sidecar import SidecarConfig, parse_sidecar

SIDECAR = dedent("""\
    # module defaults
    shared:
      models:
        fast: custom-fast
    providers:
      gemini:
        models:
          fast: gemini-flash   # cheap
          strong: gemini-pro
        whitelist:
          - gemini-flash
      codex:
        reasoning_effort:
          strong: high
    agents:
      SecurityArchitect:
        model: strong
        tools: [Read, Grep]
    skills:
      code-review:
        scope: workspace
    """)


def config(text: str = SIDECAR, environ=None) -> SidecarConfig:
    return SidecarConfig.from_text(text, environ=environ if environ is not None else {})


class TestParseSidecar:
    def test_nested_shape(self):
        data = parse_sidecar(SIDECAR)
        assert data["shared"]["models"]["fast"] == "custom-fast"
        assert data["providers"]["gemini"]["whitelist"] == ["gemini-flash"]
        assert data["agents"]["SecurityArchitect"]["tools"] == ["Read", "Grep"]

    def test_trailing_comment_stripped(self):
        assert parse_sidecar(SIDECAR)["providers"]["gemini"]["models"]["fast"] == "gemini-flash"

    def test_hash_inside_quotes_kept(self):
        assert parse_sidecar('note: "a # b"\n')["note"] == "a # b"

    def test_empty_flow_list(self):
        assert parse_sidecar("whitelist: []\n")["whitelist"] == []

    def test_list_at_key_indent(self):
        assert parse_sidecar("tools:\n- Read\n- Bash\n")["tools"] == ["Read", "Bash"]

    def test_folded_scalar(self):
        text = dedent("""\
            agents:
              Architect:
                description: >
                  Designs systems
                  end to end
            """)
        assert parse_sidecar(text)["agents"]["Architect"]["description"] == "Designs systems end to end\n"

    def test_quoted_flow_items_keep_commas(self):
        assert parse_sidecar('whitelist: ["m-1", "m,2"]\n')["whitelist"] == ["m-1", "m,2"]

    def test_empty_or_non_mapping_is_empty(self):
        assert parse_sidecar("") == {}
        assert parse_sidecar("- just\n- a list\n") == {}

    def test_invalid_yaml_raises(self):
        with pytest.raises(yaml.YAMLError):
            parse_sidecar("models: [fast\n")


class TestTierResolution:
    def test_builtin_defaults(self):
        empty = config("")
        assert empty.resolve_tier("fast") == "sonnet"
        assert empty.resolve_tier("strong") == "opus"

    def test_global_block(self):
        assert config().resolve_tier("fast", Provider.CLAUDE) == "custom-fast"
        assert config().resolve_tier("strong", Provider.CLAUDE) == "opus"

    def test_legacy_top_level_models(self):
        assert config("models:\n  fast: legacy\n").resolve_tier("fast") == "legacy"

    def test_provider_block_beats_global(self):
        assert config().resolve_tier("fast", Provider.GEMINI) == "gemini-flash"

    def test_environment_beats_everything(self):
        cfg = config(environ={"MODEL_MAP_FAST": "env-fast"})
        assert cfg.resolve_tier("fast", Provider.GEMINI) == "env-fast"
        assert cfg.resolve_tier("strong", Provider.GEMINI) == "gemini-pro"

    def test_empty_environment_value_ignored(self):
        assert config(environ={"MODEL_MAP_FAST": ""}).resolve_tier("fast") == "custom-fast"

    def test_concrete_model_passes_through(self):
        cfg = config(environ={"MODEL_MAP_FAST": "env-fast"})
        assert cfg.resolve_model("claude-sonnet-4-5", Provider.GEMINI) == "claude-sonnet-4-5"

    def test_tier_chain_order(self):
        assert [name for name, _ in config().tier_chain()] == [
            "environment",
            "provider",
            "global",
            "default",
        ]

    def test_provider_tiers(self):
        tiers = config().provider_tiers(Provider.GEMINI)
        assert (tiers.fast, tiers.strong) == ("gemini-flash", "gemini-pro")
        assert config().global_tiers().fast == "custom-fast"

    def test_reasoning_effort(self):
        assert config().provider_reasoning_effort(Provider.CODEX, "strong") == "high"
        assert config().provider_reasoning_effort(Provider.CODEX, "fast") is None


class TestWhitelist:
    def test_absent_allows_everything(self):
        assert config().whitelist(Provider.CLAUDE) is None
        assert config().is_model_whitelisted(Provider.CLAUDE, "anything")

    def test_listed_model_allowed(self):
        assert config().is_model_whitelisted(Provider.GEMINI, "gemini-flash")
        assert not config().is_model_whitelisted(Provider.GEMINI, "gemini-pro")

    def test_empty_list_denies_everything(self):
        cfg = config("providers:\n  claude:\n    whitelist: []\n")
        assert not cfg.is_model_whitelisted(Provider.CLAUDE, "sonnet")

    def test_quoted_item_with_comma_allowed(self):
        cfg = config('providers:\n  gemini:\n    whitelist: ["m-1", "m,2"]\n')
        assert cfg.whitelist(Provider.GEMINI) == ["m-1", "m,2"]
        assert cfg.is_model_whitelisted(Provider.GEMINI, "m,2")
        assert not cfg.is_model_whitelisted(Provider.GEMINI, "m")


class TestOverrides:
    def test_agent_block(self):
        assert config().agent_value("SecurityArchitect", "model") == "strong"
        assert config().agent_value("SecurityArchitect", "tools") == "Read, Grep"

    def test_legacy_top_level_agent_block(self):
        cfg = config("Architect:\n  model: strong\n")
        assert cfg.agent_value("Architect", "model") == "strong"

    def test_missing_override(self):
        assert config().agent_value("Nobody", "model") is None

    def test_reserved_names_not_treated_as_agents(self):
        assert config().agent_value("shared", "models") is None

    def test_skill_block(self):
        assert config().skill_value("code-review", "scope") == "workspace"

    def test_folded_description_override(self):
        cfg = config("agents:\n  Architect:\n    description: >\n      Designs systems\n      end to end\n")
        assert cfg.agent_value("Architect", "description") == "Designs systems end to end"

    def test_non_string_scalars(self):
        cfg = config("agents:\n  Architect:\n    reasoning_effort: 3\n    model: true\n")
        assert cfg.agent_value("Architect", "reasoning_effort") == "3"
        assert cfg.agent_value("Architect", "model") == "true"


class TestLoad:
    def test_config_beats_defaults(self, tmp_path: Path):
        (tmp_path / "defaults.yaml").write_text("models:\n  fast: from-defaults\n")
        (tmp_path / "config.yaml").write_text("models:\n  fast: from-config\n")
        cfg = SidecarConfig.load(tmp_path, environ={})
        assert cfg.path == tmp_path / "config.yaml"
        assert cfg.resolve_tier("fast") == "from-config"

    def test_defaults_used_alone(self, tmp_path: Path):
        (tmp_path / "defaults.yaml").write_text("models:\n  fast: from-defaults\n")
        assert SidecarConfig.load(tmp_path, environ={}).resolve_tier("fast") == "from-defaults"

    def test_missing_sidecar(self, tmp_path: Path):
        cfg = SidecarConfig.load(tmp_path, environ={})
        assert cfg.path is None
        assert cfg.data == {}
        assert cfg.resolve_tier("strong") == "opus"

    def test_invalid_yaml_ignored(self, tmp_path: Path, caplog):
        (tmp_path / "config.yaml").write_text("models: [fast\n")
        with caplog.at_level("WARNING", logger="forgesync.sidecar"):
            cfg = SidecarConfig.load(tmp_path, environ={})
        assert cfg.path == tmp_path / "config.yaml"
        assert cfg.data == {}
        assert cfg.resolve_tier("fast") == "sonnet"
        assert "Ignoring invalid sidecar" in caplog.text
