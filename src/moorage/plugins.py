"""
Engine Plugins API
"""

from typing import Any, Dict, List, Optional

from . import endpoint as ep
from .endpoint import build_query
from .exceptions import APIError, PluginNotFound


class Plugin:
    """Engine Plugin object"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.client = client
        self.attrs = attrs
        self.id = attrs.get('Id', '')
        self.short_id = self.id[:12]
        self.name = attrs.get('Name', '')

    def __repr__(self):
        return f"<Plugin: {self.name}>"

    @property
    def enabled(self) -> bool:
        return bool(self.attrs.get('Enabled'))

    async def enable(self, timeout: int = 0):
        return await self.client.enable(self.name, timeout=timeout)

    async def disable(self, force: bool = False):
        return await self.client.disable(self.name, force=force)

    async def remove(self, force: bool = False):
        return await self.client.remove(self.name, force=force)


class PluginCollection:
    """Engine Plugins collection"""

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Plugin]:
        data = await self.api.execute(ep.get('/plugins', build_query(filters=filters)))
        return [Plugin(p, self) for p in data or []]

    async def get(self, name: str) -> Plugin:
        """
        Get plugin by name

        Raises:
            PluginNotFound: If plugin not installed
        """
        try:
            data = await self.api.execute(ep.get(f'/plugins/{name}/json'))
        except APIError as e:
            if e.status_code == 404:
                raise PluginNotFound(f"Plugin not found: {name}", status_code=404) from e
            raise
        return Plugin(data, self)

    async def enable(self, name: str, timeout: int = 0):
        await self.api.execute(ep.post(f'/plugins/{name}/enable', build_query(timeout=timeout)))

    async def disable(self, name: str, force: bool = False):
        await self.api.execute(ep.post(f'/plugins/{name}/disable', build_query(force=force)))

    async def remove(self, name: str, force: bool = False):
        await self.api.execute(ep.delete(f'/plugins/{name}', build_query(force=force)))
