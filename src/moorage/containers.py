"""
Engine Containers API
"""

import io
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from . import endpoint as ep
from .attach import AttachSession
from .demux import Demultiplexer
from .endpoint import ResponseShape, build_query
from .exceptions import APIError, ContainerNotFound
from .log_entries import assemble_lines
from .stream_reader import Frame
from .streams import TypedStream


@dataclass(frozen=True)
class ExecResult:
    """Collected output of a finished exec"""
    exit_code: Optional[int]
    stdout: bytes
    stderr: bytes

    @property
    def output(self) -> bytes:
        return self.stdout + self.stderr


@dataclass(frozen=True)
class PrunedContainers:
    """IDs of the deleted containers and the disk space reclaimed in bytes"""
    container_ids: List[str]
    space_reclaimed: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PrunedContainers':
        return cls(
            container_ids=list(data.get('ContainersDeleted') or []),
            space_reclaimed=int(data.get('SpaceReclaimed') or 0),
        )


def shell_command(cmd: Union[str, List[str]]) -> List[str]:
    return cmd if isinstance(cmd, list) else ['sh', '-c', cmd]


class Container:
    """Engine Container object"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.client = client
        self._load(attrs)

    def _load(self, attrs: Dict[str, Any]):
        self.attrs = attrs
        self.id = attrs.get('Id', '')
        self.short_id = self.id[:12] if self.id else ''
        self.name = attrs.get('Name', attrs.get('Names', [''])[0] if attrs.get('Names') else '').lstrip('/')

        # List and inspect report state differently
        state = attrs.get('State', {})
        if isinstance(state, dict):
            self.status = state.get('Status', 'unknown')
        else:
            self.status = state if isinstance(state, str) and state else attrs.get('Status', 'unknown')

        self.image = attrs.get('Image', attrs.get('ImageID', ''))
        self.labels = attrs.get('Labels') or attrs.get('Config', {}).get('Labels') or {}
        self.ports = attrs.get('Ports', {})

    def __repr__(self):
        return f"<Container: {self.name or self.short_id}>"

    @property
    def tty(self) -> Optional[bool]:
        """Whether a pseudo-terminal is attached; None if unknown (list results)"""
        config = self.attrs.get('Config')
        if not isinstance(config, dict):
            return None
        return bool(config.get('Tty', False))

    async def reload(self) -> 'Container':
        """Refresh attributes from the engine"""
        fresh = await self.client.get(self.id)
        self._load(fresh.attrs)
        return self

    async def start(self):
        """Start this container"""
        return await self.client.start(self.id)

    async def stop(self, timeout: Optional[int] = None):
        """Stop this container"""
        return await self.client.stop(self.id, timeout=timeout)

    async def restart(self, timeout: Optional[int] = None):
        """Restart this container"""
        return await self.client.restart(self.id, timeout=timeout)

    async def kill(self, signal: str = 'SIGKILL'):
        """Kill this container"""
        return await self.client.kill(self.id, signal=signal)

    async def pause(self):
        return await self.client.pause(self.id)

    async def unpause(self):
        return await self.client.unpause(self.id)

    async def rename(self, name: str):
        return await self.client.rename(self.id, name)

    async def remove(self, force: bool = False, v: bool = False):
        """Remove this container"""
        return await self.client.remove(self.id, force=force, v=v)

    async def wait(self, condition: Optional[str] = None) -> int:
        return await self.client.wait(self.id, condition=condition)

    async def logs(self, **kwargs) -> TypedStream:
        """Stream this container's logs (see ContainerCollection.logs)"""
        kwargs.setdefault('tty', self.tty)
        return await self.client.logs(self.id, **kwargs)

    async def stats(self, stream: bool = True, one_shot: bool = False):
        return await self.client.stats(self.id, stream=stream, one_shot=one_shot)

    async def attach(self, **kwargs) -> AttachSession:
        kwargs.setdefault('tty', self.tty)
        return await self.client.attach(self.id, **kwargs)

    async def exec_run(self, cmd: Union[str, List[str]], **kwargs) -> ExecResult:
        """Execute command in container"""
        return await self.client.exec_run(self.id, cmd, **kwargs)

    async def put_archive(self, path: str, data: bytes):
        """Upload tar archive to container"""
        return await self.client.put_archive(self.id, path, data)

    async def get_archive(self, path: str) -> bytes:
        """Download path from container as tar archive"""
        return await self.client.get_archive(self.id, path)


class ContainerCollection:
    """Engine Containers collection"""

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, all: bool = False, limit: Optional[int] = None,
                   filters: Optional[Dict[str, Any]] = None) -> List[Container]:
        """
        List containers

        Args:
            all: Show all containers (including stopped)
            limit: Maximum number of containers to return
            filters: Filters to apply

        Returns:
            List of Container objects
        """
        query = build_query(all=all, limit=limit, filters=filters)
        containers_data = await self.api.execute(ep.get('/containers/json', query))
        return [Container(c_data, self) for c_data in containers_data or []]

    async def get(self, container_id: str) -> Container:
        """
        Get container by ID or name

        Raises:
            ContainerNotFound: If container not found
        """
        try:
            container_data = await self.api.execute(ep.get(f'/containers/{container_id}/json'))
        except APIError as e:
            if e.status_code == 404:
                raise ContainerNotFound(f"Container not found: {container_id}", status_code=404) from e
            raise
        return Container(container_data, self)

    async def create(self, image: str, name: Optional[str] = None,
                     command: Optional[Union[str, List[str]]] = None,
                     environment: Optional[Dict[str, str]] = None,
                     volumes: Optional[Dict[str, Dict[str, str]]] = None,
                     ports: Optional[Dict[str, int]] = None,
                     stdin_open: bool = False, tty: bool = False,
                     network_mode: Optional[str] = None, hostname: Optional[str] = None,
                     auto_remove: bool = False, platform: Optional[str] = None,
                     labels: Optional[Dict[str, str]] = None,
                     **kwargs) -> Container:
        """
        Create container

        Args:
            image: Image name or ID
            name: Container name
            command: Command to run (a string runs through ``sh -c``)
            environment: Environment variables
            volumes: Volume mounts {host_path: {'bind': container_path, 'mode': 'rw'}}
            ports: Port bindings {container_port: host_port}
            stdin_open: Keep STDIN open
            tty: Allocate TTY
            network_mode: Network mode
            hostname: Container hostname
            auto_remove: Auto-remove when stopped
            platform: Platform (e.g., linux/amd64)
            labels: Container labels
            **kwargs: Raw config keys merged into the request body

        Returns:
            Container object
        """
        config: Dict[str, Any] = {
            'Image': image,
            'Tty': tty,
            'OpenStdin': stdin_open,
            'StdinOnce': False,
            'AttachStdin': stdin_open,
            'AttachStdout': True,
            'AttachStderr': True,
        }

        if command:
            config['Cmd'] = shell_command(command)
        if environment:
            config['Env'] = [f"{k}={v}" for k, v in environment.items()]
        if hostname:
            config['Hostname'] = hostname
        if labels:
            config['Labels'] = labels

        host_config: Dict[str, Any] = {}
        if auto_remove:
            host_config['AutoRemove'] = auto_remove
        if network_mode:
            host_config['NetworkMode'] = network_mode
        if volumes:
            host_config['Binds'] = [
                f"{host_path}:{mount['bind']}:{mount.get('mode', 'rw')}"
                for host_path, mount in volumes.items()
            ]
        if ports:
            port_bindings = {}
            exposed_ports = {}
            for container_port, host_port in ports.items():
                port_key = str(container_port) if '/' in str(container_port) else f"{container_port}/tcp"
                exposed_ports[port_key] = {}
                port_bindings[port_key] = [{'HostPort': str(host_port)}]
            config['ExposedPorts'] = exposed_ports
            host_config['PortBindings'] = port_bindings
        if host_config:
            config['HostConfig'] = host_config

        config.update(kwargs)

        result = await self.api.execute(ep.post(
            '/containers/create', build_query(name=name, platform=platform), body=config,
        ))
        return await self.get(result['Id'])

    async def run(self, image: str, command: Optional[Union[str, List[str]]] = None, **kwargs) -> Container:
        """Create and start container"""
        container = await self.create(image, command=command, **kwargs)
        await container.start()
        return container

    async def update(self, container_id: str, **resources) -> Dict[str, Any]:
        """Update resource limits, e.g. ``update(id, Memory=512 * 2**20)``"""
        return await self.api.execute(ep.post(f'/containers/{container_id}/update', body=resources))

    async def start(self, container_id: str):
        """Start container"""
        return await self.api.execute(ep.post(f'/containers/{container_id}/start'))

    async def stop(self, container_id: str, timeout: Optional[int] = None):
        """Stop container; the engine waits `timeout` seconds before killing it"""
        call_timeout = self.client.settings.timeout + (timeout or 10)
        return await self.api.execute(
            ep.post(f'/containers/{container_id}/stop', build_query(t=timeout)),
            timeout=call_timeout,
        )

    async def restart(self, container_id: str, timeout: Optional[int] = None):
        """Restart container"""
        call_timeout = self.client.settings.timeout + (timeout or 10)
        return await self.api.execute(
            ep.post(f'/containers/{container_id}/restart', build_query(t=timeout)),
            timeout=call_timeout,
        )

    async def kill(self, container_id: str, signal: str = 'SIGKILL'):
        """Kill container"""
        return await self.api.execute(ep.post(f'/containers/{container_id}/kill', build_query(signal=signal)))

    async def pause(self, container_id: str):
        """Freeze all processes in the container"""
        return await self.api.execute(ep.post(f'/containers/{container_id}/pause'))

    async def unpause(self, container_id: str):
        return await self.api.execute(ep.post(f'/containers/{container_id}/unpause'))

    async def rename(self, container_id: str, new_name: str):
        return await self.api.execute(ep.post(f'/containers/{container_id}/rename', build_query(name=new_name)))

    async def remove(self, container_id: str, force: bool = False, v: bool = False):
        """Remove container"""
        return await self.api.execute(ep.delete(f'/containers/{container_id}', build_query(force=force, v=v)))

    async def wait(self, container_id: str, condition: Optional[str] = None) -> int:
        """Block until the container stops; returns its exit code"""
        result = await self.api.execute(
            ep.post(f'/containers/{container_id}/wait', build_query(condition=condition)),
            timeout=self.client.settings.stream_timeout,
        )
        return int(result['StatusCode'])

    async def changes(self, container_id: str) -> List[Dict[str, Any]]:
        """Filesystem changes since the container was created"""
        return await self.api.execute(ep.get(f'/containers/{container_id}/changes')) or []

    async def top(self, container_id: str, ps_args: str = '-ef') -> Dict[str, Any]:
        """``ps``-like listing of the container's processes"""
        return await self.api.execute(ep.get(f'/containers/{container_id}/top', build_query(ps_args=ps_args)))

    async def prune(self, filters: Optional[Dict[str, Any]] = None) -> PrunedContainers:
        """Delete all stopped containers"""
        return await self.api.execute(ep.post(
            '/containers/prune', build_query(filters=filters), model=PrunedContainers.from_dict,
        ))

    async def stats(self, container_id: str, stream: bool = True, one_shot: bool = False):
        """
        Resource usage statistics

        Returns:
            A TypedStream of stats dicts when stream=True, otherwise one dict
        """
        query = build_query(stream=stream, **{'one-shot': one_shot if not stream else None})
        endpoint = ep.get(f'/containers/{container_id}/stats', query)
        if not stream:
            return await self.api.execute(endpoint)
        return await self.api.execute(endpoint, timeout=self.client.settings.stream_timeout,
                                      shape=ResponseShape.NDJSON)

    async def _resolve_tty(self, container_id: str, tty: Optional[bool]) -> bool:
        if tty is not None:
            return tty
        container = await self.get(container_id)
        return bool(container.tty)

    async def logs(self, container_id: str, stdout: bool = True, stderr: bool = True,
                   timestamps: bool = False, tail: Union[int, str] = 'all',
                   since: Optional[int] = None, until: Optional[int] = None,
                   follow: bool = False, tty: Optional[bool] = None) -> TypedStream:
        """
        Get container logs

        Args:
            container_id: Container ID
            stdout: Return stdout stream
            stderr: Return stderr stream
            timestamps: Prefix each line with its timestamp
            tail: Number of lines to show from end ('all' for all)
            since: Show logs since timestamp (Unix epoch)
            until: Show logs until timestamp (Unix epoch)
            follow: Keep streaming new output
            tty: Container has a TTY (raw stream); inspected when None

        Returns:
            TypedStream of Frame objects
        """
        tty = await self._resolve_tty(container_id, tty)
        query = build_query(stdout=stdout, stderr=stderr, timestamps=timestamps,
                            tail=tail, since=since, until=until, follow=follow)
        timeout = self.client.settings.stream_timeout if follow else self.client.settings.timeout
        shape = ResponseShape.RAW if tty else ResponseShape.DEMUX
        return await self.api.execute(ep.get(f'/containers/{container_id}/logs', query),
                                      timeout=timeout, shape=shape)

    async def log_entries(self, container_id: str, timestamps: bool = True, **kwargs) -> TypedStream:
        """Logs assembled into LogEntry lines"""
        frames = await self.logs(container_id, timestamps=timestamps, **kwargs)
        return TypedStream(assemble_lines(frames, timestamps=timestamps), on_close=frames.aclose,
                           maxsize=self.client.settings.stream_buffer, name=f"log lines {container_id}")

    async def attach(self, container_id: str, stdin: bool = True, stdout: bool = True,
                     stderr: bool = True, logs: bool = False, detach_keys: Optional[str] = None,
                     tty: Optional[bool] = None) -> AttachSession:
        """
        Attach to a running container

        Returns:
            Connected AttachSession
        """
        tty = await self._resolve_tty(container_id, tty)
        query = build_query(stream=True, stdin=stdin, stdout=stdout, stderr=stderr,
                            logs=logs, detachKeys=detach_keys)
        session = AttachSession(self.api, ep.post(f'/containers/{container_id}/attach', query), tty=tty)
        return await session.connect()

    async def exec_create(self, container_id: str, cmd: Union[str, List[str]], stdout: bool = True,
                          stderr: bool = True, stdin: bool = False, tty: bool = False,
                          privileged: bool = False, user: str = '',
                          environment: Optional[Dict[str, str]] = None,
                          workdir: str = '') -> str:
        """Create an exec instance; returns its ID"""
        exec_config: Dict[str, Any] = {
            'AttachStdout': stdout,
            'AttachStderr': stderr,
            'AttachStdin': stdin,
            'Tty': tty,
            'Privileged': privileged,
            'Cmd': shell_command(cmd),
        }
        if user:
            exec_config['User'] = user
        if environment:
            exec_config['Env'] = [f"{k}={v}" for k, v in environment.items()]
        if workdir:
            exec_config['WorkingDir'] = workdir

        result = await self.api.execute(ep.post(f'/containers/{container_id}/exec', body=exec_config))
        return result['Id']

    async def exec_start(self, exec_id: str, tty: bool = False, detach: bool = False,
                         timeout: Optional[float] = None):
        """
        Start an exec instance

        Returns:
            None when detached, otherwise a TypedStream of Frame objects
        """
        endpoint = ep.post(f'/exec/{exec_id}/start', body={'Detach': detach, 'Tty': tty})
        if detach:
            return await self.api.execute(endpoint)
        shape = ResponseShape.RAW if tty else ResponseShape.DEMUX
        return await self.api.execute(endpoint, timeout=timeout or self.client.settings.stream_timeout,
                                      shape=shape)

    async def exec_attach(self, exec_id: str, tty: bool = False) -> AttachSession:
        """Start an exec with stdin attached; returns a connected session"""
        endpoint = ep.post(f'/exec/{exec_id}/start', body={'Detach': False, 'Tty': tty})
        return await AttachSession(self.api, endpoint, tty=tty).connect()

    async def exec_inspect(self, exec_id: str) -> Dict[str, Any]:
        return await self.api.execute(ep.get(f'/exec/{exec_id}/json'))

    async def exec_run(self, container_id: str, cmd: Union[str, List[str]], stdout: bool = True,
                       stderr: bool = True, tty: bool = False, privileged: bool = False,
                       user: str = '', environment: Optional[Dict[str, str]] = None,
                       workdir: str = '', timeout: Optional[float] = None) -> ExecResult:
        """
        Execute command in running container and collect its output

        Args:
            container_id: Container ID
            cmd: Command to execute
            stdout: Attach to stdout
            stderr: Attach to stderr
            tty: Allocate TTY (output is not split into stdout/stderr)
            privileged: Run as privileged
            user: User to run as
            environment: Environment variables
            workdir: Working directory
            timeout: Deadline for the command's output in seconds

        Returns:
            ExecResult with exit code and output
        """
        exec_id = await self.exec_create(
            container_id, cmd, stdout=stdout, stderr=stderr, tty=tty,
            privileged=privileged, user=user, environment=environment, workdir=workdir,
        )
        frames: TypedStream[Frame] = await self.exec_start(exec_id, tty=tty, timeout=timeout)
        out, err = io.BytesIO(), io.BytesIO()
        async with frames:
            await Demultiplexer(frames).pump(out, err)
        info = await self.exec_inspect(exec_id)
        return ExecResult(exit_code=info.get('ExitCode'), stdout=out.getvalue(), stderr=err.getvalue())

    async def put_archive(self, container_id: str, path: str, data: bytes) -> bool:
        """
        Upload tar archive to container

        Args:
            container_id: Container ID
            path: Path in container where to extract archive
            data: Tar archive as bytes

        Returns:
            True if successful
        """
        await self.api.execute(ep.put(
            f'/containers/{container_id}/archive', build_query(path=path),
            body=data, content_type='application/x-tar',
        ))
        return True

    async def get_archive(self, container_id: str, path: str) -> bytes:
        """
        Download path from container as tar archive

        Args:
            container_id: Container ID
            path: Path in container to download

        Returns:
            Tar archive as bytes
        """
        return await self.api.execute(ep.get(
            f'/containers/{container_id}/archive', build_query(path=path), mapper=bytes,
        ))
