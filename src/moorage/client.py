"""
Engine Client - Main API entry point
"""

import dataclasses
import logging
from typing import Any, Dict, Optional, Union

from . import endpoint as ep
from .config import ClientSettings, SettingsManager
from .containers import ContainerCollection
from .dispatch import Dispatcher
from .endpoint import ResponseShape, build_query
from .events import Event
from .http_client import HTTPTransport
from .images import ImageCollection
from .networks import NetworkCollection
from .plugins import PluginCollection
from .streams import TypedStream
from .swarm import ConfigCollection, SecretCollection
from .volumes import VolumeCollection

logger = logging.getLogger(__name__)

Timestamp = Union[int, float, str]


class EngineClient:
    """
    Container engine API client

    Usage::

        async with EngineClient() as client:
            print(await client.ping())
            for container in await client.containers.list():
                print(container.name)
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 settings: Optional[ClientSettings] = None, transport=None):
        """
        Initialize engine client

        Args:
            base_url: Engine socket path or URL (default: settings, then auto-detect)
            timeout: Default request timeout in seconds
            settings: Resolved client settings
            transport: Pre-built transport (default: HTTPTransport)
        """
        settings = settings or ClientSettings()
        if timeout is not None:
            settings = dataclasses.replace(settings, timeout=timeout)
        self.settings = settings

        if transport is None:
            transport = HTTPTransport(base_url=base_url or settings.socket_path or None,
                                      timeout=int(settings.timeout))
        self.http = transport
        self.api = Dispatcher(self.http, settings)

        self.containers = ContainerCollection(self)
        self.images = ImageCollection(self)
        self.networks = NetworkCollection(self)
        self.volumes = VolumeCollection(self)
        self.plugins = PluginCollection(self)
        self.secrets = SecretCollection(self)
        self.configs = ConfigCollection(self)

    @classmethod
    def from_settings(cls, manager: Optional[SettingsManager] = None, **kwargs) -> 'EngineClient':
        """Build a client from the user's settings file and environment"""
        manager = manager or SettingsManager()
        return cls(settings=manager.client_settings(), **kwargs)

    async def ping(self) -> str:
        """Ping engine daemon"""
        return await self.api.execute(ep.get('/_ping', mapper=ep.text_response))

    async def version(self) -> Dict[str, Any]:
        """Get engine version info"""
        return await self.api.execute(ep.get('/version'))

    async def info(self) -> Dict[str, Any]:
        """Get engine system info"""
        return await self.api.execute(ep.get('/info'))

    async def df(self) -> Dict[str, Any]:
        """Disk usage by images, containers, volumes and build cache"""
        return await self.api.execute(ep.get('/system/df'))

    async def events(self, since: Optional[Timestamp] = None, until: Optional[Timestamp] = None,
                     filters: Optional[Dict[str, Any]] = None) -> TypedStream:
        """
        Stream engine events

        Args:
            since: Show events created since this timestamp
            until: Stop the stream at this timestamp
            filters: Filters to apply (e.g. {'type': ['container']})

        Returns:
            TypedStream of Event objects
        """
        query = build_query(since=since, until=until, filters=filters)
        endpoint = ep.get('/events', query, shape=ResponseShape.NDJSON, model=Event.from_dict)
        return await self.api.execute(endpoint, timeout=self.settings.stream_timeout)

    async def close(self):
        """Close client; each request owns its connection so nothing is pooled"""
        logger.debug(f"Client closed ({self.http.describe()})")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
