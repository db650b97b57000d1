from hippocampus.config.settings import (
    CONFIG_JSON_SCHEMA,
    HippocampusConfig,
    HippocampusEnvSettings,
    parse_config,
)

__all__ = ["CONFIG_JSON_SCHEMA", "HippocampusConfig", "HippocampusEnvSettings", "parse_config"]
