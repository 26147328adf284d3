"""
Engine Volumes API
"""

from typing import Any, Dict, List, Optional

from . import endpoint as ep
from .endpoint import build_query
from .exceptions import APIError, VolumeNotFound


class Volume:
    """Engine Volume object"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.client = client
        self.attrs = attrs
        self.name = attrs.get('Name', '')
        self.id = self.name
        self.short_id = self.name[:12]

    def __repr__(self):
        return f"<Volume: {self.name}>"

    async def remove(self, force: bool = False):
        return await self.client.remove(self.name, force=force)


class VolumeCollection:
    """Engine Volumes collection"""

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Volume]:
        data = await self.api.execute(ep.get('/volumes', build_query(filters=filters)))
        return [Volume(v, self) for v in (data or {}).get('Volumes') or []]

    async def get(self, name: str) -> Volume:
        """
        Get volume by name

        Raises:
            VolumeNotFound: If volume not found
        """
        try:
            data = await self.api.execute(ep.get(f'/volumes/{name}'))
        except APIError as e:
            if e.status_code == 404:
                raise VolumeNotFound(f"Volume not found: {name}", status_code=404) from e
            raise
        return Volume(data, self)

    async def create(self, name: Optional[str] = None, driver: str = 'local',
                     driver_opts: Optional[Dict[str, str]] = None,
                     labels: Optional[Dict[str, str]] = None) -> Volume:
        """
        Create volume

        Args:
            name: Volume name (engine generates one when omitted)
            driver: Volume driver
            driver_opts: Driver options
            labels: Labels dict
        """
        body: Dict[str, Any] = {'Driver': driver}
        if name:
            body['Name'] = name
        if driver_opts:
            body['DriverOpts'] = driver_opts
        if labels:
            body['Labels'] = labels
        data = await self.api.execute(ep.post('/volumes/create', body=body))
        return Volume(data, self)

    async def remove(self, name: str, force: bool = False):
        await self.api.execute(ep.delete(f'/volumes/{name}', build_query(force=force)))

    async def prune(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Remove unused volumes"""
        return await self.api.execute(ep.post('/volumes/prune', build_query(filters=filters)))
