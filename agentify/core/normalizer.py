"""
Config Normalizer - UI agent configuration to canonical BuildSpec.

Pure and side-effect free: validation calls it repeatedly without ever
triggering a build. Accepts camelCase (browser) and snake_case keys, and
accepts its own output, so normalize(normalize(x)) == normalize(x).

Name resolution:
1. explicit canonical `agent_name` -> used verbatim
2. display name (`name`, `agentName`, ...) -> urn:agent:<namespace>:<slug>
3. neither -> synthesized from a timestamp (unless the caller forbids it)
"""
import re
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Mapping, Optional, Union

from agentify.core.errors import InvalidConfigError
from agentify.schemas.compile import BuildTarget, Platform

# =============================================================================
# Constants
# =============================================================================

DEFAULT_NAMESPACE = "agentify"
DEFAULT_VERSION = "1.0.0"
DEFAULT_PERSONALITY = "helpful"
DEFAULT_AGENT_TYPE = "llm"
DEFAULT_ISOLATION_LEVEL = "process"
DEFAULT_MEMORY_MB = 512
DEFAULT_CPU_CORES = 1
DEFAULT_TIME_LIMIT_S = 60

URN_PATTERN = re.compile(r"^urn:agent:[a-z0-9._-]+:[^\s:]+$")
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9._-]+$")

DISPLAY_NAME_KEYS = ("display_name", "displayName", "name", "agentName")
AGENT_TYPES = {"llm", "sequential", "parallel", "loop"}
ISOLATION_LEVELS = {"process", "container", "vm"}

BUILD_TARGET_ALIASES = {
    "wasm": BuildTarget.WASM,
    "native-plugin": BuildTarget.NATIVE_PLUGIN,
    "native": BuildTarget.NATIVE_PLUGIN,
    "plugin": BuildTarget.NATIVE_PLUGIN,
    "go": BuildTarget.NATIVE_PLUGIN,
}

PLATFORM_ALIASES = {
    "linux": Platform.LINUX,
    "windows": Platform.WINDOWS,
    "win": Platform.WINDOWS,
    "darwin": Platform.DARWIN,
    "mac": Platform.DARWIN,
    "macos": Platform.DARWIN,
}

# UI feature toggles and the tool each one contributes
FEATURE_TOOLS = {
    "chat": {
        "name": "chat",
        "description": "Chat with the user",
        "parameters": [
            {"name": "input", "type": "string", "description": "The user input", "required": True},
        ],
        "return_type": "object",
    },
    "automation": {
        "name": "automate",
        "description": "Automate a task",
        "parameters": [
            {"name": "task", "type": "string", "description": "The task to automate", "required": True},
        ],
        "return_type": "object",
    },
    "analytics": {
        "name": "analyze",
        "description": "Analyze data",
        "parameters": [
            {"name": "data", "type": "string", "description": "The data to analyze", "required": True},
        ],
        "return_type": "object",
    },
}


@dataclass
class ResourceLimits:
    """Sandbox limits for the built agent."""
    memory: Union[int, float] = DEFAULT_MEMORY_MB  # MB
    cpu: Union[int, float] = DEFAULT_CPU_CORES  # cores
    time_limit: Union[int, float] = DEFAULT_TIME_LIMIT_S  # seconds


@dataclass
class BuildSpec:
    """Canonical, fully defaulted description of what to build."""
    agent_id: str
    agent_name: str
    display_name: str
    description: str
    instructions: str
    personality: str = DEFAULT_PERSONALITY
    version: str = DEFAULT_VERSION
    agent_type: str = DEFAULT_AGENT_TYPE
    build_target: BuildTarget = BuildTarget.WASM
    platform: Platform = Platform.LINUX
    resource_limits: ResourceLimits = field(default_factory=ResourceLimits)
    isolation_level: str = DEFAULT_ISOLATION_LEVEL
    network_access: bool = True
    file_system_access: bool = False
    dependencies: list[str] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    resources: list[dict[str, Any]] = field(default_factory=list)
    use_chromem_go: bool = True
    sub_agent_capabilities: bool = False

    @property
    def slug(self) -> str:
        """Filesystem-safe short name (last URN segment)."""
        tail = self.agent_name.rsplit(":", 1)[-1]
        return re.sub(r"[^A-Za-z0-9_-]", "_", tail).lower() or "agent"

    def to_dict(self) -> dict[str, Any]:
        """Plain JSON-serializable form (also valid normalizer input)."""
        data = asdict(self)
        data["build_target"] = self.build_target.value
        data["platform"] = self.platform.value
        return data


# =============================================================================
# Helpers
# =============================================================================

def _pick(record: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among the given keys."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _setting(record: Mapping[str, Any], advanced: Mapping[str, Any], snake: str, camel: str) -> Any:
    """Top-level value (either spelling), else the advancedSettings value."""
    return _first(_pick(record, snake, camel), advanced.get(camel))


def _clean_str(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidConfigError(f"'{field_name}' must be a string")
    value = value.strip()
    return value or None


def slugify_name(display_name: str) -> str:
    """Lower-case and replace runs of whitespace or colons with hyphens."""
    return re.sub(r"[\s:]+", "-", display_name.strip().lower()).strip("-")


def canonical_agent_name(display_name: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    """Build the URN-form agent name for a display name."""
    slug = slugify_name(display_name)
    if not slug:
        raise InvalidConfigError("Agent display name is empty")
    return f"urn:agent:{namespace}:{slug}"


def is_canonical_agent_name(value: str) -> bool:
    return bool(URN_PATTERN.match(value))


def _parse_build_target(value: Any) -> BuildTarget:
    if value is None:
        return BuildTarget.WASM
    if isinstance(value, BuildTarget):
        return value
    target = BUILD_TARGET_ALIASES.get(str(value).strip().lower())
    if target is None:
        raise InvalidConfigError(
            f"Invalid build target: {value}. Valid targets: wasm, native-plugin"
        )
    return target


def _parse_platform(value: Any) -> Platform:
    if value is None:
        return Platform.LINUX
    if isinstance(value, Platform):
        return value
    platform = PLATFORM_ALIASES.get(str(value).strip().lower())
    if platform is None:
        raise InvalidConfigError(
            f"Invalid platform: {value}. Valid platforms: linux, windows, darwin"
        )
    return platform


def _positive_number(value: Any, field_name: str, default: Union[int, float]) -> Union[int, float]:
    if value is None:
        return default
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(f"'{field_name}' must be a number")
    if value <= 0:
        raise InvalidConfigError(f"'{field_name}' must be positive")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _flag(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidConfigError(f"'{field_name}' must be a boolean")
    return value


def _parse_dependencies(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise InvalidConfigError("'dependencies' must be a list of strings")
    seen: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise InvalidConfigError("'dependencies' must be a list of strings")
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
    return seen


def _tools_from_features(features: Any) -> list[dict[str, Any]]:
    if not features:
        return []
    if isinstance(features, Mapping):
        enabled = [name for name, on in features.items() if on]
    elif isinstance(features, (list, tuple)):
        enabled = [name for name in features if isinstance(name, str)]
    else:
        raise InvalidConfigError("'features' must be an object or a list")
    # Stable order regardless of how the UI serialized the toggles
    return [dict(FEATURE_TOOLS[name]) for name in FEATURE_TOOLS if name in enabled]


def _resources_from_settings(settings: Any) -> list[dict[str, Any]]:
    if not settings:
        return []
    if not isinstance(settings, Mapping):
        raise InvalidConfigError("'settings' must be an object")

    resources: list[dict[str, Any]] = []
    servers = _pick(settings, "mcpServers", "mcp_servers") or []
    if not isinstance(servers, (list, tuple)):
        raise InvalidConfigError("'settings.mcpServers' must be a list")
    for index, server in enumerate(servers):
        if isinstance(server, Mapping) and server.get("enabled"):
            resources.append({
                "name": f"mcp_server_{index}",
                "type": "json",
                "content": {
                    "name": server.get("name"),
                    "url": server.get("url"),
                    "enabled": True,
                },
                "is_embedded": True,
            })

    creativity = settings.get("creativity")
    if creativity is not None:
        if isinstance(creativity, bool) or not isinstance(creativity, (int, float)):
            raise InvalidConfigError("'settings.creativity' must be a number")
        resources.append({
            "name": "creativity_parameter",
            "type": "text",
            "content": str(creativity),
            "is_embedded": True,
        })
    return resources


def _parse_entries(value: Any, field_name: str) -> list[dict[str, Any]]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, Mapping) for v in value):
        raise InvalidConfigError(f"'{field_name}' must be a list of objects")
    return [dict(v) for v in value]


# =============================================================================
# Normalization
# =============================================================================

def normalize_config(
    raw: Union[Mapping[str, Any], BuildSpec, None],
    *,
    allow_synthesized_name: bool = True,
    namespace: str = DEFAULT_NAMESPACE,
    overrides: Optional[Mapping[str, Any]] = None,
    clock: Callable[[], float] = time.time,
) -> BuildSpec:
    """
    Normalize a loosely typed agent configuration into a BuildSpec.

    Args:
        raw: UI config record, or a previously normalized BuildSpec/dict
        allow_synthesized_name: When False, a config with no name at all
            is rejected instead of getting a timestamp-based name
        namespace: URN namespace for derived names
        overrides: Fields applied on top of `raw` (e.g. request-level
            buildTarget/platform); an overriding agent_name wins
        clock: Time source for synthesized names

    Raises:
        InvalidConfigError: malformed record or field
    """
    if isinstance(raw, BuildSpec):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raise InvalidConfigError("Agent configuration must be an object")
    if not NAMESPACE_PATTERN.match(namespace):
        raise InvalidConfigError(f"Invalid agent namespace: {namespace}")

    record: dict[str, Any] = dict(raw)
    if overrides:
        record.update({k: v for k, v in overrides.items() if v is not None})

    advanced = _pick(record, "advancedSettings", "advanced_settings") or {}
    if not isinstance(advanced, Mapping):
        raise InvalidConfigError("'advancedSettings' must be an object")

    # --- naming -------------------------------------------------------------
    canonical = _clean_str(record.get("agent_name"), "agent_name")
    display = None
    for key in DISPLAY_NAME_KEYS:
        display = _clean_str(record.get(key), key)
        if display:
            break

    if canonical:
        agent_name = canonical
        display = display or canonical.rsplit(":", 1)[-1]
    elif display:
        agent_name = canonical_agent_name(display, namespace)
    elif allow_synthesized_name:
        display = f"agent-{int(clock() * 1000)}"
        agent_name = canonical_agent_name(display, namespace)
    else:
        raise InvalidConfigError("Agent configuration requires 'name' or 'agent_name'")

    agent_id = _clean_str(_pick(record, "agent_id", "agentId"), "agent_id")
    if not agent_id:
        agent_id = str(uuid.uuid5(uuid.NAMESPACE_URL, agent_name))

    instructions = _clean_str(record.get("instructions"), "instructions")
    if not instructions:
        instructions = f"You are {display}, a helpful AI assistant."
    description = _clean_str(record.get("description"), "description") or instructions
    personality = _clean_str(record.get("personality"), "personality") or DEFAULT_PERSONALITY

    version = _clean_str(record.get("version"), "version") or DEFAULT_VERSION
    if not SEMVER_PATTERN.match(version):
        raise InvalidConfigError(f"Invalid version (expected semver): {version}")

    agent_type = (_clean_str(_pick(record, "agent_type", "agentType"), "agent_type")
                  or DEFAULT_AGENT_TYPE)
    if agent_type not in AGENT_TYPES:
        raise InvalidConfigError(f"Invalid agent type: {agent_type}")

    # --- build target / platform -------------------------------------------
    build_target = _parse_build_target(_pick(record, "build_target", "buildTarget"))
    platform = _parse_platform(_pick(record, "platform", "selectedPlatform"))

    # --- sandbox ------------------------------------------------------------
    # Top-level fields win over advancedSettings, which win over defaults
    limits = _pick(record, "resource_limits", "resourceLimits") or {}
    if not isinstance(limits, Mapping):
        raise InvalidConfigError("'resource_limits' must be an object")
    resource_limits = ResourceLimits(
        memory=_positive_number(
            _first(limits.get("memory"), advanced.get("memoryLimit")),
            "memory", DEFAULT_MEMORY_MB,
        ),
        cpu=_positive_number(
            _first(limits.get("cpu"), advanced.get("cpuCores")),
            "cpu", DEFAULT_CPU_CORES,
        ),
        time_limit=_positive_number(
            _first(_pick(limits, "time_limit", "timeLimit"), advanced.get("timeLimit")),
            "time_limit", DEFAULT_TIME_LIMIT_S,
        ),
    )

    isolation_level = _clean_str(
        _first(_pick(record, "isolation_level", "isolationLevel"), advanced.get("isolationLevel")),
        "isolation_level",
    ) or DEFAULT_ISOLATION_LEVEL
    if isolation_level not in ISOLATION_LEVELS:
        raise InvalidConfigError(f"Invalid isolation level: {isolation_level}")

    network_access = _flag(
        _setting(record, advanced, "network_access", "networkAccess"), "network_access", True,
    )
    file_system_access = _flag(
        _setting(record, advanced, "file_system_access", "fileSystemAccess"), "file_system_access", False,
    )
    use_chromem_go = _flag(
        _setting(record, advanced, "use_chromem_go", "useChromemGo"), "use_chromem_go", True,
    )
    sub_agent_capabilities = _flag(
        _setting(record, advanced, "sub_agent_capabilities", "subAgentCapabilities"),
        "sub_agent_capabilities", False,
    )

    # --- contents -----------------------------------------------------------
    dependencies = _parse_dependencies(_pick(record, "dependencies", "pythonDependencies"))

    if record.get("tools") is not None:
        tools = _parse_entries(record["tools"], "tools")
    else:
        tools = _tools_from_features(record.get("features"))

    if record.get("resources") is not None:
        resources = _parse_entries(record["resources"], "resources")
    else:
        resources = _resources_from_settings(record.get("settings"))

    return BuildSpec(
        agent_id=agent_id,
        agent_name=agent_name,
        display_name=display,
        description=description,
        instructions=instructions,
        personality=personality,
        version=version,
        agent_type=agent_type,
        build_target=build_target,
        platform=platform,
        resource_limits=resource_limits,
        isolation_level=isolation_level,
        network_access=network_access,
        file_system_access=file_system_access,
        dependencies=dependencies,
        tools=tools,
        resources=resources,
        use_chromem_go=use_chromem_go,
        sub_agent_capabilities=sub_agent_capabilities,
    )
