from __future__ import annotations

from .config import config_sha256, load_config, resolve_server_credentials
from .config_schema import AppConfig
from .errors import ConfigError
from .feed_filter import ConversationsFeedFilter, filter_notes
from .pipeline import PublishPipeline
from .servers import Identity, RecordProtocol, ServerRegistry, ServerTarget
from .session import PipelineState
from .visibility import VisibilitySet

__all__ = [
    "AppConfig",
    "ConfigError",
    "ConversationsFeedFilter",
    "Identity",
    "PipelineState",
    "PublishPipeline",
    "RecordProtocol",
    "ServerRegistry",
    "ServerTarget",
    "VisibilitySet",
    "config_sha256",
    "filter_notes",
    "load_config",
    "resolve_server_credentials",
]
