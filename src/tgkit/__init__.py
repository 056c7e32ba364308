"""Telegram Bot API client with a retrying dispatch engine and update ingestion."""

__version__ = "0.1.0"

from .client import BotClient, ErrorContext
from .config import BotConfig, IngestionConfiguration, RequestConfiguration, load_config
from .credentials import Credential
from .errors import (
    ConfigError,
    MemoryLimitError,
    NetworkError,
    PollingAbortedError,
    RemoteApiError,
    TgkitError,
    ValidationError,
)
from .handlers import CallbackQueryHandler, CommandHandler, EventHandler, HandlerRegistry
from .ingestion import UpdateIngestor
from .middleware import Middleware
from .model import ApiResult, CallMode, OutgoingCall
from .params import InputFile
from .polling import Poller, PollState
from .storage import MemoryUpdateStorage, RedisUpdateStorage, SqliteUpdateStorage
from .updates import Update
from .webhook import WebhookRequest, WebhookResponse, create_webhook_app

__all__ = [
    "ApiResult",
    "BotClient",
    "BotConfig",
    "CallMode",
    "CallbackQueryHandler",
    "CommandHandler",
    "ConfigError",
    "Credential",
    "ErrorContext",
    "EventHandler",
    "HandlerRegistry",
    "IngestionConfiguration",
    "InputFile",
    "MemoryLimitError",
    "MemoryUpdateStorage",
    "Middleware",
    "NetworkError",
    "OutgoingCall",
    "PollState",
    "Poller",
    "PollingAbortedError",
    "RedisUpdateStorage",
    "RemoteApiError",
    "RequestConfiguration",
    "SqliteUpdateStorage",
    "TgkitError",
    "Update",
    "UpdateIngestor",
    "ValidationError",
    "WebhookRequest",
    "WebhookResponse",
    "create_webhook_app",
    "load_config",
]
