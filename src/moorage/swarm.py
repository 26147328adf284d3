"""
Swarm secrets and configs

Both resources share one shape: a name, base64 data, labels, and a version
index that every update must quote.
"""

import base64
from typing import Any, Dict, List, Optional, Type, Union

from . import endpoint as ep
from .endpoint import build_query
from .exceptions import APIError, ConfigNotFound, SecretNotFound


class SwarmObject:
    """A secret or config as returned by the engine"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.client = client
        self.attrs = attrs
        self.id = attrs.get('ID', '')
        self.short_id = self.id[:12]

    @property
    def name(self) -> str:
        return self.attrs.get('Spec', {}).get('Name', '')

    @property
    def version(self) -> int:
        return int(self.attrs.get('Version', {}).get('Index', 0))

    def __repr__(self):
        return f"<{type(self).__name__}: {self.name}>"

    async def remove(self):
        return await self.client.remove(self.id)


class Secret(SwarmObject):
    pass


class Config(SwarmObject):
    pass


def encode_data(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        data = data.encode('utf-8')
    return base64.b64encode(data).decode('ascii')


class SwarmObjectCollection:
    resource = ''
    model: Type[SwarmObject] = SwarmObject
    not_found: Type[APIError] = APIError

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[SwarmObject]:
        data = await self.api.execute(ep.get(f'/{self.resource}', build_query(filters=filters)))
        return [self.model(item, self) for item in data or []]

    async def get(self, object_id: str) -> SwarmObject:
        try:
            data = await self.api.execute(ep.get(f'/{self.resource}/{object_id}'))
        except APIError as e:
            if e.status_code == 404:
                raise self.not_found(f"{self.model.__name__} not found: {object_id}", status_code=404) from e
            raise
        return self.model(data, self)

    async def create(self, name: str, data: Union[str, bytes],
                     labels: Optional[Dict[str, str]] = None) -> str:
        """
        Create a new object

        Args:
            name: Object name
            data: Content (base64-encoded before sending)
            labels: Labels dict

        Returns:
            The new object's ID
        """
        body = {'Name': name, 'Data': encode_data(data), 'Labels': labels or {}}
        result = await self.api.execute(ep.post(f'/{self.resource}/create', body=body))
        return result['ID']

    async def update(self, object_id: str, version: int, labels: Optional[Dict[str, str]] = None):
        """
        Update an object's spec

        The engine only allows label changes; version must match the current
        ``Version.Index`` or the update is rejected.
        """
        current = await self.get(object_id)
        spec = dict(current.attrs.get('Spec', {}))
        if labels is not None:
            spec['Labels'] = labels
        await self.api.execute(ep.post(
            f'/{self.resource}/{object_id}/update', build_query(version=version), body=spec,
        ))

    async def remove(self, object_id: str):
        await self.api.execute(ep.delete(f'/{self.resource}/{object_id}'))


class SecretCollection(SwarmObjectCollection):
    """Engine Secrets collection"""
    resource = 'secrets'
    model = Secret
    not_found = SecretNotFound


class ConfigCollection(SwarmObjectCollection):
    """Engine Configs collection"""
    resource = 'configs'
    model = Config
    not_found = ConfigNotFound
