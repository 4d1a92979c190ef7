"""
Tests for the Config Normalizer.

Covers:
- Canonical name resolution (explicit, derived URN, synthesized)
- Defaults and idempotence
- Advanced settings, features and settings mapping
- Validation errors
"""
import pytest

from agentify.core.errors import InvalidConfigError
from agentify.core.normalizer import (
    BuildSpec,
    canonical_agent_name,
    is_canonical_agent_name,
    normalize_config,
    slugify_name,
)
from agentify.schemas.compile import BuildTarget, Platform


# =============================================================================
# Naming
# =============================================================================

class TestNaming:
    """Tests for agent name resolution."""

    def test_display_name_becomes_urn(self):
        """A display name is slugified into the URN form."""
        spec = normalize_config({"name": "Demo Bot"})
        assert spec.agent_name == "urn:agent:agentify:demo-bot"
        assert spec.display_name == "Demo Bot"
        assert is_canonical_agent_name(spec.agent_name)

    def test_agent_name_camel_case_is_display_name(self):
        spec = normalize_config({"agentName": "Demo Bot"})
        assert spec.agent_name == "urn:agent:agentify:demo-bot"

    def test_whitespace_runs_collapse(self):
        assert slugify_name("  My   Great\tAgent ") == "my-great-agent"

    @pytest.mark.parametrize("display_name,slug", [
        ("Bot: v2", "bot-v2"),
        ("a:b:c", "a-b-c"),
        (": Leading colon", "leading-colon"),
        ("Ops Bot (EU) #1", "ops-bot-(eu)-#1"),
    ])
    def test_punctuated_names_stay_canonical(self, display_name, slug):
        spec = normalize_config({"name": display_name})
        assert spec.agent_name == f"urn:agent:agentify:{slug}"
        assert is_canonical_agent_name(spec.agent_name)
        assert spec.slug

    def test_colons_only_name_is_empty(self):
        with pytest.raises(InvalidConfigError):
            canonical_agent_name(" : : ")

    def test_explicit_canonical_name_is_verbatim(self):
        spec = normalize_config({"agent_name": "urn:agent:acme:Custom_Name", "name": "Pretty"})
        assert spec.agent_name == "urn:agent:acme:Custom_Name"
        assert spec.display_name == "Pretty"

    def test_custom_namespace(self):
        spec = normalize_config({"name": "Helper"}, namespace="acme")
        assert spec.agent_name == "urn:agent:acme:helper"

    def test_invalid_namespace_rejected(self):
        with pytest.raises(InvalidConfigError):
            normalize_config({"name": "Helper"}, namespace="Bad Namespace")

    def test_synthesized_name_from_clock(self):
        spec = normalize_config({}, clock=lambda: 1700000000.0)
        assert spec.display_name == "agent-1700000000000"
        assert spec.agent_name == "urn:agent:agentify:agent-1700000000000"

    def test_synthesis_disallowed(self):
        with pytest.raises(InvalidConfigError):
            normalize_config({"personality": "calm"}, allow_synthesized_name=False)

    def test_empty_display_name_rejected_by_helper(self):
        with pytest.raises(InvalidConfigError):
            canonical_agent_name("   ")

    def test_agent_id_is_deterministic(self):
        a = normalize_config({"name": "Demo Bot"})
        b = normalize_config({"name": "Demo Bot"})
        assert a.agent_id == b.agent_id
        assert a.agent_id != normalize_config({"name": "Other Bot"}).agent_id


# =============================================================================
# Defaults and idempotence
# =============================================================================

class TestDefaults:
    """Tests for defaulted fields."""

    def test_defaults(self):
        spec = normalize_config({"name": "Demo Bot"})
        assert spec.instructions == "You are Demo Bot, a helpful AI assistant."
        assert spec.description == spec.instructions
        assert spec.version == "1.0.0"
        assert spec.agent_type == "llm"
        assert spec.build_target == BuildTarget.WASM
        assert spec.platform == Platform.LINUX
        assert spec.resource_limits.memory == 512
        assert spec.resource_limits.cpu == 1
        assert spec.resource_limits.time_limit == 60
        assert spec.isolation_level == "process"
        assert spec.network_access is True
        assert spec.file_system_access is False
        assert spec.use_chromem_go is True
        assert spec.sub_agent_capabilities is False

    def test_idempotent_on_spec(self):
        """normalize(normalize(x)) == normalize(x)."""
        raw = {
            "name": "Research Agent",
            "personality": "curious",
            "features": {"chat": True, "analytics": True},
            "settings": {"creativity": 0.4, "mcpServers": [{"name": "fs", "url": "http://x", "enabled": True}]},
            "dependencies": ["requests", "numpy", "requests"],
            "advancedSettings": {"memoryLimit": 1024, "cpuCores": 2, "networkAccess": False},
        }
        once = normalize_config(raw, overrides={"build_target": "go", "platform": "mac"})
        assert normalize_config(once) == once
        assert normalize_config(once.to_dict()) == once

    def test_to_dict_uses_enum_values(self):
        data = normalize_config({"name": "Demo Bot"}).to_dict()
        assert data["build_target"] == "wasm"
        assert data["platform"] == "linux"
        assert data["resource_limits"] == {"memory": 512, "cpu": 1, "time_limit": 60}

    def test_slug(self):
        assert normalize_config({"name": "Demo Bot"}).slug == "demo-bot"

    def test_accepts_build_spec(self):
        spec = normalize_config({"name": "Demo Bot"})
        assert isinstance(normalize_config(spec), BuildSpec)


# =============================================================================
# Mapping of UI fields
# =============================================================================

class TestMapping:
    """Tests for advanced settings, features and settings."""

    def test_target_and_platform_aliases(self):
        spec = normalize_config({"name": "A", "buildTarget": "go", "selectedPlatform": "mac"})
        assert spec.build_target == BuildTarget.NATIVE_PLUGIN
        assert spec.platform == Platform.DARWIN

    def test_overrides_win(self):
        spec = normalize_config(
            {"name": "A", "build_target": "wasm"},
            overrides={"build_target": "native-plugin", "platform": "windows"},
        )
        assert spec.build_target == BuildTarget.NATIVE_PLUGIN
        assert spec.platform == Platform.WINDOWS

    def test_none_overrides_ignored(self):
        spec = normalize_config({"name": "A", "platform": "darwin"}, overrides={"platform": None})
        assert spec.platform == Platform.DARWIN

    def test_advanced_settings_merge(self):
        spec = normalize_config({
            "name": "A",
            "advancedSettings": {
                "memoryLimit": 2048,
                "cpuCores": 4,
                "timeLimit": 120,
                "isolationLevel": "container",
                "networkAccess": False,
                "fileSystemAccess": True,
                "useChromemGo": False,
                "subAgentCapabilities": True,
            },
        })
        assert spec.resource_limits.memory == 2048
        assert spec.resource_limits.cpu == 4
        assert spec.resource_limits.time_limit == 120
        assert spec.isolation_level == "container"
        assert spec.network_access is False
        assert spec.file_system_access is True
        assert spec.use_chromem_go is False
        assert spec.sub_agent_capabilities is True

    def test_top_level_wins_over_advanced(self):
        spec = normalize_config({
            "name": "A",
            "network_access": True,
            "advancedSettings": {"networkAccess": False},
        })
        assert spec.network_access is True

    def test_features_become_tools(self):
        spec = normalize_config({"name": "A", "features": {"analytics": True, "chat": True, "automation": False}})
        assert [t["name"] for t in spec.tools] == ["chat", "analyze"]

    def test_settings_become_resources(self):
        spec = normalize_config({
            "name": "A",
            "settings": {
                "mcpServers": [
                    {"name": "off", "url": "http://a", "enabled": False},
                    {"name": "on", "url": "http://b", "enabled": True},
                ],
                "creativity": 0.7,
            },
        })
        names = [r["name"] for r in spec.resources]
        assert names == ["mcp_server_1", "creativity_parameter"]
        assert spec.resources[0]["content"]["url"] == "http://b"
        assert spec.resources[1]["content"] == "0.7"

    def test_dependencies_deduplicated_in_order(self):
        spec = normalize_config({"name": "A", "dependencies": ["b", "a", "b", " a "]})
        assert spec.dependencies == ["b", "a"]


# =============================================================================
# Validation
# =============================================================================

class TestValidation:
    """Tests for rejected configurations."""

    @pytest.mark.parametrize("raw", [None, "config", ["name"]])
    def test_non_mapping_rejected(self, raw):
        with pytest.raises(InvalidConfigError):
            normalize_config(raw)

    @pytest.mark.parametrize("field,value", [
        ("buildTarget", "exe"),
        ("platform", "beos"),
        ("version", "1.0"),
        ("agent_type", "robot"),
        ("isolation_level", "chroot"),
        ("name", 42),
        ("dependencies", "numpy"),
        ("features", 3),
    ])
    def test_invalid_fields(self, field, value):
        with pytest.raises(InvalidConfigError):
            normalize_config({"name": "A", field: value})

    @pytest.mark.parametrize("limits", [
        {"memoryLimit": -1},
        {"cpuCores": 0},
        {"timeLimit": "60"},
        {"memoryLimit": True},
    ])
    def test_invalid_limits(self, limits):
        with pytest.raises(InvalidConfigError):
            normalize_config({"name": "A", "advancedSettings": limits})

    def test_invalid_flag(self):
        with pytest.raises(InvalidConfigError):
            normalize_config({"name": "A", "advancedSettings": {"networkAccess": "yes"}})

    def test_error_status_code(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            normalize_config({"name": "A", "buildTarget": "exe"})
        assert exc_info.value.status_code == 400
        assert "build target" in exc_info.value.message
