"""
Engine Networks API
"""

import logging
from typing import Any, Dict, List, Optional

from . import endpoint as ep
from .endpoint import build_query
from .exceptions import APIError, NetworkNotFound

logger = logging.getLogger(__name__)


class Network:
    """Engine Network object"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.client = client
        self.attrs = attrs
        self.id = attrs.get('Id', '')
        self.short_id = self.id[:12]
        self.name = attrs.get('Name', '')

    def __repr__(self):
        return f"<Network: {self.name}>"

    async def reload(self) -> 'Network':
        """Reload network data"""
        fresh = await self.client.get(self.id)
        self.attrs = fresh.attrs
        return self

    async def connect(self, container: str, **kwargs):
        return await self.client.connect(self.id, container, **kwargs)

    async def disconnect(self, container: str, force: bool = False):
        return await self.client.disconnect(self.id, container, force=force)

    async def remove(self):
        """Remove network"""
        return await self.client.remove(self.id)


class NetworkCollection:
    """Engine Networks collection"""

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Network]:
        """
        List networks

        Args:
            filters: dict of filters (e.g., {'name': ['mynet']})

        Returns:
            List of Network objects
        """
        data = await self.api.execute(ep.get('/networks', build_query(filters=filters)))
        return [Network(net, self) for net in data or []]

    async def get(self, network_id: str) -> Network:
        """
        Get network by ID or name

        Raises:
            NetworkNotFound: If network not found
        """
        try:
            data = await self.api.execute(ep.get(f'/networks/{network_id}'))
        except APIError as e:
            if e.status_code == 404:
                raise NetworkNotFound(f"Network not found: {network_id}", status_code=404) from e
            raise
        return Network(data, self)

    async def create(self, name: str, driver: str = 'bridge', internal: bool = False,
                     attachable: bool = True, options: Optional[Dict[str, str]] = None,
                     labels: Optional[Dict[str, str]] = None,
                     ipam: Optional[Dict[str, Any]] = None) -> Network:
        """
        Create network

        Args:
            name: Network name
            driver: Network driver (default: bridge)
            internal: Internal network (default: False)
            attachable: Attachable (default: True)
            options: Driver options dict
            labels: Labels dict
            ipam: IPAM configuration

        Returns:
            Network object
        """
        data: Dict[str, Any] = {
            'Name': name,
            'Driver': driver,
            'Internal': internal,
            'Attachable': attachable,
            'CheckDuplicate': True,
        }
        if options:
            data['Options'] = options
        if labels:
            data['Labels'] = labels
        if ipam:
            data['IPAM'] = ipam

        result = await self.api.execute(ep.post('/networks/create', body=data))
        logger.info(f"Network created: {name}")
        return await self.get(result['Id'])

    async def remove(self, network_id: str):
        await self.api.execute(ep.delete(f'/networks/{network_id}'))

    async def connect(self, network_id: str, container: str,
                      aliases: Optional[List[str]] = None,
                      ipv4_address: Optional[str] = None):
        """Connect a container to a network"""
        body: Dict[str, Any] = {'Container': container}
        endpoint_config: Dict[str, Any] = {}
        if aliases:
            endpoint_config['Aliases'] = aliases
        if ipv4_address:
            endpoint_config['IPAMConfig'] = {'IPv4Address': ipv4_address}
        if endpoint_config:
            body['EndpointConfig'] = endpoint_config
        await self.api.execute(ep.post(f'/networks/{network_id}/connect', body=body))

    async def disconnect(self, network_id: str, container: str, force: bool = False):
        """Disconnect a container from a network"""
        await self.api.execute(ep.post(
            f'/networks/{network_id}/disconnect', body={'Container': container, 'Force': force},
        ))

    async def prune(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Remove unused networks

        Returns:
            Dict with deleted networks info
        """
        return await self.api.execute(ep.post('/networks/prune', build_query(filters=filters)))
