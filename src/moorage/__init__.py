"""
moorage - asyncio client for the Docker / Podman engine API
Pure Python implementation without external dependencies
Works with the engine daemon via Unix socket or TCP
"""

from .attach import AttachSession
from .client import EngineClient
from .config import ClientSettings, SettingsManager
from .demux import Channel, Demultiplexer, Frame
from .events import Event
from .exceptions import (
    APIError,
    BuildError,
    ConfigNotFound,
    ContainerNotFound,
    DecodeError,
    EngineException,
    ImageNotFound,
    NetworkNotFound,
    PluginNotFound,
    SecretNotFound,
    SessionClosed,
    Timeout,
    TransportError,
    TruncatedStream,
    UnknownResponse,
    VolumeNotFound,
)
from .log_entries import LogEntry
from .ndjson import ProgressStatus, PullResult
from .streams import TypedStream

__all__ = [
    'EngineClient',
    'ClientSettings',
    'SettingsManager',
    'AttachSession',
    'TypedStream',
    'Channel',
    'Frame',
    'Demultiplexer',
    'Event',
    'LogEntry',
    'ProgressStatus',
    'PullResult',
    'EngineException',
    'TransportError',
    'Timeout',
    'APIError',
    'BuildError',
    'ContainerNotFound',
    'ImageNotFound',
    'NetworkNotFound',
    'VolumeNotFound',
    'PluginNotFound',
    'SecretNotFound',
    'ConfigNotFound',
    'DecodeError',
    'TruncatedStream',
    'UnknownResponse',
    'SessionClosed',
]

__version__ = '1.0.0'
