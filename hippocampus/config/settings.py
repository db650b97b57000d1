import logging
import math
import os
import re
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from hippocampus.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_SHARED_BANK_TEMPLATE = "oc::{project_id}::shared"
DEFAULT_AGENT_BANK_TEMPLATE = "oc::{project_id}::agent::{agent_id}"

ALLOWED_KEYS = frozenset({
    "apiKey",
    "baseUrl",
    "autoRecall",
    "autoCapture",
    "maxRecallResults",
    "profileFrequency",
    "routingMode",
    "sharedBankNameTemplate",
    "agentBankNameTemplate",
    "readjustEnabled",
    "readjustConfidenceThreshold",
    "debug",
    "recallTimeoutMs",
    "rememberTimeoutMs",
    "requestRetryAttempts",
})

_BOOL_KEYS = ("autoRecall", "autoCapture", "readjustEnabled", "debug")
_NUMBER_KEYS = (
    "maxRecallResults",
    "profileFrequency",
    "readjustConfidenceThreshold",
    "recallTimeoutMs",
    "rememberTimeoutMs",
    "requestRetryAttempts",
)
_STRING_KEYS = ("sharedBankNameTemplate", "agentBankNameTemplate")

ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


class HippocampusEnvSettings(BaseSettings):
    """Values picked up from the environment when the plugin config omits them."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_config = SettingsConfigDict(
        env_prefix='HIPPOCAMPUS_OPENCLAW_',
        extra='ignore',
        case_sensitive=False
    )


class HippocampusConfig(BaseModel):
    """Parsed plugin configuration. Out-of-range numbers are clamped, not rejected."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='forbid',
        frozen=True,
    )

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    auto_recall: bool = True
    auto_capture: bool = True
    max_recall_results: int = Field(10, description="Memories injected per turn (1-50)")
    profile_frequency: int = Field(50, description="Include profile sections every N user turns")
    routing_mode: Literal["project_agent_hybrid"] = "project_agent_hybrid"
    shared_bank_name_template: str = DEFAULT_SHARED_BANK_TEMPLATE
    agent_bank_name_template: str = DEFAULT_AGENT_BANK_TEMPLATE
    readjust_enabled: bool = True
    readjust_confidence_threshold: float = 0.62
    debug: bool = False
    recall_timeout_ms: int = 10_000
    remember_timeout_ms: int = 10_000
    request_retry_attempts: int = 2

    @model_validator(mode='before')
    @classmethod
    def drop_mistyped_values(cls, data: Any) -> Any:
        # Wrongly typed values fall back to their defaults
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in list(cleaned):
            value = cleaned[key]
            camel = key if key in ALLOWED_KEYS else to_camel(key)
            if camel in _BOOL_KEYS and not isinstance(value, bool):
                del cleaned[key]
            elif camel in _NUMBER_KEYS and not _is_finite_number(value):
                del cleaned[key]
            elif camel in _STRING_KEYS and not isinstance(value, str):
                del cleaned[key]
        return cleaned

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        return (v or DEFAULT_BASE_URL).rstrip('/')

    @field_validator('max_recall_results', mode='before')
    @classmethod
    def clamp_max_recall_results(cls, v):
        return int(max(1, min(50, v)))

    @field_validator('profile_frequency', mode='before')
    @classmethod
    def clamp_profile_frequency(cls, v):
        return int(max(1, v))

    @field_validator('readjust_confidence_threshold', mode='before')
    @classmethod
    def clamp_threshold(cls, v):
        return float(max(0.0, min(1.0, v)))

    @field_validator('recall_timeout_ms', 'remember_timeout_ms', mode='before')
    @classmethod
    def clamp_timeouts(cls, v):
        return int(max(1000, v))

    @field_validator('request_retry_attempts', mode='before')
    @classmethod
    def clamp_retry_attempts(cls, v):
        return int(max(0, min(5, v)))


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def resolve_env_vars(value: str) -> str:
    """Expand ${VAR} references; an unset variable is a configuration error."""
    def _replace(match: "re.Match[str]") -> str:
        env_var = match.group(1)
        env_value = os.environ.get(env_var)
        if not env_value:
            raise ConfigurationError(f"Environment variable {env_var} is not set")
        return env_value

    return ENV_VAR_PATTERN.sub(_replace, value)


def parse_config(raw: Any, env: Optional[HippocampusEnvSettings] = None) -> HippocampusConfig:
    """
    Parse the raw plugin config handed over by the host.

    Args:
        raw: Plugin config object; anything but a dict is treated as empty.
        env: Environment settings (read from os.environ when omitted).

    Returns:
        A validated, clamped HippocampusConfig.

    Raises:
        ConfigurationError: unknown keys, or an unset ${VAR} in apiKey.
    """
    cfg: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}

    unknown = [k for k in cfg if k not in ALLOWED_KEYS]
    if unknown:
        raise ConfigurationError(f"hippocampus config has unknown keys: {', '.join(unknown)}")

    env = env or HippocampusEnvSettings()

    api_key_raw = cfg.pop("apiKey", None)
    if not (isinstance(api_key_raw, str) and api_key_raw):
        api_key_raw = env.api_key
    cfg["apiKey"] = resolve_env_vars(api_key_raw) if api_key_raw else None

    base_url = cfg.pop("baseUrl", None)
    if not (isinstance(base_url, str) and base_url.strip()):
        base_url = env.base_url or DEFAULT_BASE_URL
    cfg["baseUrl"] = base_url

    # Only one routing mode exists
    cfg.pop("routingMode", None)

    parsed = HippocampusConfig.model_validate(cfg)
    logger.debug(
        f"[Config] base_url={parsed.base_url} max_recall={parsed.max_recall_results} "
        f"readjust={parsed.readjust_enabled}@{parsed.readjust_confidence_threshold}"
    )
    return parsed


CONFIG_JSON_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "apiKey": {"type": "string"},
        "baseUrl": {"type": "string"},
        "autoRecall": {"type": "boolean"},
        "autoCapture": {"type": "boolean"},
        "maxRecallResults": {"type": "number", "minimum": 1, "maximum": 50},
        "profileFrequency": {"type": "number", "minimum": 1},
        "routingMode": {"type": "string", "enum": ["project_agent_hybrid"]},
        "sharedBankNameTemplate": {"type": "string"},
        "agentBankNameTemplate": {"type": "string"},
        "readjustEnabled": {"type": "boolean"},
        "readjustConfidenceThreshold": {"type": "number", "minimum": 0, "maximum": 1},
        "debug": {"type": "boolean"},
        "recallTimeoutMs": {"type": "number", "minimum": 1000},
        "rememberTimeoutMs": {"type": "number", "minimum": 1000},
        "requestRetryAttempts": {"type": "number", "minimum": 0, "maximum": 5},
    },
    "required": [],
}
