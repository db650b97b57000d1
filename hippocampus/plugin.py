# hippocampus/plugin.py
"""
Host entry point: wires config, the HTTP client, bank resolution, weight
profiles, the recall/capture hooks and the memory tools into the host API.
"""
import logging
from typing import Optional

from hippocampus.config.settings import CONFIG_JSON_SCHEMA, HippocampusConfig, parse_config
from hippocampus.core.interfaces.plugin_api_interface import PluginApiInterface
from hippocampus.core.types.common_types import TurnContext
from hippocampus.modules.memory.bank_resolver import BankResolver
from hippocampus.modules.memory.capture_service import CaptureService
from hippocampus.modules.memory.recall_service import RecallService
from hippocampus.modules.memory.turn_context import infer_turn_context
from hippocampus.modules.memory.weight_profiles import WeightProfiles
from hippocampus.modules.store.hippocampus_client import HippocampusClient
from hippocampus.services.memory_tools import MemoryTools
from hippocampus.utils.logging_utils import attach_host_logger

logger = logging.getLogger(__name__)

PLUGIN_ID = "openclaw-hipocampus"


class HippocampusPlugin:
    id = PLUGIN_ID
    name = "Hippocampus"
    description = "OpenClaw memory plugin powered by Hippocampus"
    kind = "memory"
    config_schema = CONFIG_JSON_SCHEMA

    def __init__(self):
        self.config: Optional[HippocampusConfig] = None
        self.client: Optional[HippocampusClient] = None
        self.banks: Optional[BankResolver] = None
        self.weight_profiles: Optional[WeightProfiles] = None
        self.latest_turn: Optional[TurnContext] = None

    def set_turn_context(self, turn: TurnContext) -> None:
        self.latest_turn = turn

    def get_turn_context(self) -> TurnContext:
        if self.latest_turn is not None:
            return self.latest_turn
        return infer_turn_context({}, {})

    def register(self, api: PluginApiInterface) -> bool:
        """
        Register hooks, tools and the service with the host.

        Returns False (and registers nothing) when no API key is configured.
        """
        config = parse_config(getattr(api, "plugin_config", None))
        attach_host_logger(getattr(api, "logger", None), config.debug)
        self.config = config

        if not config.api_key:
            logger.info("hippocampus: missing api key, set HIPPOCAMPUS_OPENCLAW_API_KEY or plugin config.apiKey")
            return False

        self.client = HippocampusClient.from_config(config)
        self.banks = BankResolver(self.client, config)
        self.weight_profiles = WeightProfiles()

        if config.auto_recall:
            recall = RecallService(self.client, config, self.banks, self.weight_profiles,
                                   on_turn_context=self.set_turn_context)
            api.on("before_agent_start", recall.handle)

        if config.auto_capture:
            capture = CaptureService(self.client, config, self.banks, self.weight_profiles,
                                     on_turn_context=self.set_turn_context)
            api.on("agent_end", capture.handle)

        tools = MemoryTools(self.client, self.banks, self.get_turn_context)
        for tool in tools.definitions():
            api.register_tool(tool, {"name": tool["name"]})

        api.register_service({
            "id": PLUGIN_ID,
            "start": lambda: logger.info("hippocampus: connected"),
            "stop": lambda: logger.info("hippocampus: stopped"),
        })

        logger.info(
            f"hippocampus: registered (base_url={config.base_url}, "
            f"auto_recall={config.auto_recall}, auto_capture={config.auto_capture})"
        )
        return True

    async def shutdown(self) -> None:
        """Close the HTTP client; safe to call when registration was skipped."""
        if self.client is not None:
            await self.client.close()
            self.client = None


def register(api: PluginApiInterface) -> HippocampusPlugin:
    plugin = HippocampusPlugin()
    plugin.register(api)
    return plugin
