# hippocampus/core/interfaces/plugin_api_interface.py
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

EventHandler = Callable[[Dict[str, Any], Optional[Dict[str, Any]]], Awaitable[Optional[Dict[str, Any]]]]


class PluginApiInterface(Protocol):
    """
    Surface the host runtime hands to the plugin at registration time.
    Only the members used by HippocampusPlugin are listed.
    """

    plugin_config: Any
    logger: Any

    def on(self, event_name: str, handler: EventHandler) -> None:
        ...

    def register_tool(self, tool: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> None:
        ...

    def register_service(self, service: Dict[str, Any]) -> None:
        ...
