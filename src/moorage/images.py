"""
Engine Images API
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import endpoint as ep
from .endpoint import ResponseShape, build_query
from .exceptions import APIError, BuildError, DecodeError, ImageNotFound
from .ndjson import ProgressStatus, PullResult, detect_pull_completion
from .streams import TypedStream
from .tar_utils import create_build_context

logger = logging.getLogger(__name__)

# base64 of "{}": the engine wants the header even for anonymous pushes
ANONYMOUS_AUTH = 'e30='


def parse_repository_tag(name: str) -> Tuple[str, Optional[str]]:
    """
    Split ``repo[:tag]`` or ``repo@digest``

    Returns:
        Tuple of (repository, tag or digest or None)
    """
    if '@' in name:
        repository, digest = name.split('@', 1)
        return repository, digest
    slash = name.rfind('/')
    colon = name.rfind(':')
    if colon > slash:
        return name[:colon], name[colon + 1:]
    return name, None


class Image:
    """Engine Image object"""

    def __init__(self, attrs: Dict[str, Any], client):
        self.attrs = attrs
        self.client = client
        self.id = attrs.get('Id', '')
        self.short_id = self.id.replace('sha256:', '')[:12] if self.id else ''
        self.tags = attrs.get('RepoTags') or []

    def __repr__(self):
        return f"<Image: {self.tags[0] if self.tags else self.short_id}>"

    async def tag(self, repository: str, tag: Optional[str] = None):
        """Tag this image"""
        return await self.client.tag(self.id, repository, tag=tag)

    async def history(self) -> List[Dict[str, Any]]:
        return await self.client.history(self.id)

    async def remove(self, force: bool = False, noprune: bool = False):
        """Remove this image"""
        return await self.client.remove(self.id, force=force, noprune=noprune)


class ImageCollection:
    """Engine Images collection"""

    def __init__(self, client):
        self.client = client

    @property
    def api(self):
        return self.client.api

    async def list(self, name: Optional[str] = None, all: bool = False,
                   filters: Optional[Dict[str, Any]] = None) -> List[Image]:
        """
        List images

        Args:
            name: Filter by image name
            all: Show all images (including intermediates)
            filters: Filters to apply

        Returns:
            List of Image objects
        """
        images_data = await self.api.execute(ep.get('/images/json', build_query(all=all, filters=filters)))
        images = [Image(img_data, self) for img_data in images_data or []]

        if name:
            images = [img for img in images if any(name in tag for tag in img.tags)]

        return images

    async def get(self, name: str) -> Image:
        """
        Get image by name or ID

        Raises:
            ImageNotFound: If image not found
        """
        try:
            image_data = await self.api.execute(ep.get(f'/images/{name}/json'))
        except APIError as e:
            if e.status_code == 404:
                raise ImageNotFound(f"Image not found: {name}", status_code=404) from e
            raise
        return Image(image_data, self)

    async def history(self, name: str) -> List[Dict[str, Any]]:
        """Layer history of an image"""
        return await self.api.execute(ep.get(f'/images/{name}/history')) or []

    def _pull_endpoint(self, repository: str, tag: Optional[str], platform: Optional[str],
                       model=None, on_line=None) -> ep.Endpoint:
        repository, parsed_tag = parse_repository_tag(repository)
        tag = tag or parsed_tag or 'latest'
        if tag.startswith('sha256:'):
            from_image = f"{repository}@{tag}"
            query = build_query(fromImage=from_image, platform=platform)
        else:
            query = build_query(fromImage=repository, tag=tag, platform=platform)
        return ep.post('/images/create', query, shape=ResponseShape.NDJSON,
                       model=model, error_envelope=True, on_line=on_line)

    async def pull_progress(self, repository: str, tag: Optional[str] = None,
                            platform: Optional[str] = None) -> TypedStream:
        """
        Start a pull and stream its progress

        Returns:
            TypedStream of ProgressStatus; an error line from the engine ends
            it with APIError
        """
        endpoint = self._pull_endpoint(repository, tag, platform, model=ProgressStatus.from_dict)
        return await self.api.execute(endpoint, timeout=self.client.settings.stream_timeout)

    async def pull(self, repository: str, tag: Optional[str] = None,
                   platform: Optional[str] = None,
                   progress: Optional[Callable[[ProgressStatus], None]] = None) -> PullResult:
        """
        Pull image from registry

        Args:
            repository: Repository name, optionally with ``:tag`` or ``@digest``
            tag: Image tag (default: from repository, else 'latest')
            platform: Platform (e.g., linux/amd64)
            progress: Called with each ProgressStatus line

        Returns:
            PullResult with the pulled digest (Docker) or image ID (Podman)

        Raises:
            APIError: the engine reported an error mid-pull
            UnknownResponse: pull finished without a recognisable result
        """
        raw_lines: List[bytes] = []
        endpoint = self._pull_endpoint(repository, tag, platform, model=ProgressStatus.from_dict,
                                       on_line=raw_lines.append)
        stream = await self.api.execute(endpoint, timeout=self.client.settings.stream_timeout)

        records: List[ProgressStatus] = []
        async with stream:
            async for record in stream:
                if isinstance(record, DecodeError):
                    continue
                records.append(record)
                if progress is not None:
                    progress(record)

        result = detect_pull_completion(records, b'\n'.join(raw_lines))
        logger.info(f"Pulled {repository}: {result.digest}")
        return result

    async def push(self, repository: str, tag: Optional[str] = None,
                   registry_auth: Optional[str] = None) -> TypedStream:
        """
        Push an image to its registry

        Args:
            repository: Repository name
            tag: Tag to push (default: all tags)
            registry_auth: Opaque X-Registry-Auth header value

        Returns:
            TypedStream of ProgressStatus
        """
        endpoint = ep.post(
            f'/images/{repository}/push', build_query(tag=tag),
            headers=(('X-Registry-Auth', registry_auth or ANONYMOUS_AUTH),),
            shape=ResponseShape.NDJSON, model=ProgressStatus.from_dict, error_envelope=True,
        )
        return await self.api.execute(endpoint, timeout=self.client.settings.stream_timeout)

    async def build(self, path: str, tag: Optional[str] = None,
                    dockerfile: str = 'Dockerfile', buildargs: Optional[Dict[str, str]] = None,
                    platform: Optional[str] = None, rm: bool = True, nocache: bool = False,
                    pull: bool = False, callback: Optional[Callable[[str], None]] = None) -> Image:
        """
        Build image from Dockerfile

        Args:
            path: Build context path
            tag: Tag for the image
            dockerfile: Dockerfile name
            buildargs: Build arguments
            platform: Target platform
            rm: Remove intermediate containers
            nocache: Do not use the build cache
            pull: Always pull newer base images
            callback: Callback for build output

        Returns:
            Built Image object

        Raises:
            BuildError: the build failed or reported no result
        """
        context = create_build_context(path)
        query = build_query(dockerfile=dockerfile, t=tag, buildargs=buildargs, platform=platform,
                            rm=rm, nocache=nocache, pull=pull)
        endpoint = ep.post('/build', query, body=context, content_type='application/x-tar',
                           shape=ResponseShape.NDJSON, error_envelope=True)

        image_id = None
        try:
            stream = await self.api.execute(endpoint, timeout=self.client.settings.stream_timeout)
            async with stream:
                async for data in stream:
                    if isinstance(data, DecodeError):
                        if callback:
                            callback(data.context.decode('utf-8', errors='ignore').strip())
                        continue
                    if not isinstance(data, dict):
                        continue
                    if 'stream' in data:
                        msg = data['stream'].strip()
                        if callback and msg:
                            callback(msg)
                    aux = data.get('aux')
                    if isinstance(aux, dict) and 'ID' in aux:
                        image_id = aux['ID']
        except APIError as e:
            raise BuildError(f"Build failed: {e.explanation}", status_code=e.status_code) from e

        if image_id is None and tag is None:
            raise BuildError("Build completed but no image ID was reported")
        logger.info(f"Image built: {tag or image_id}")
        return await self.get(image_id or tag)

    async def tag(self, image: str, repository: str, tag: Optional[str] = None) -> bool:
        """Tag an image into a repository"""
        await self.api.execute(ep.post(f'/images/{image}/tag', build_query(repo=repository, tag=tag)))
        return True

    async def remove(self, image: str, force: bool = False, noprune: bool = False) -> List[Dict[str, Any]]:
        """
        Remove image

        Args:
            image: Image name or ID
            force: Force removal
            noprune: Don't delete untagged parents
        """
        return await self.api.execute(ep.delete(f'/images/{image}', build_query(force=force, noprune=noprune)))

    async def prune(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Remove unused images"""
        return await self.api.execute(ep.post('/images/prune', build_query(filters=filters)))

    async def commit(self, container: str, repository: Optional[str] = None, tag: Optional[str] = None,
                     comment: Optional[str] = None, author: Optional[str] = None, pause: bool = True,
                     config: Optional[Dict[str, Any]] = None) -> str:
        """
        Create an image from a container's filesystem

        Returns:
            The new image ID
        """
        query = build_query(container=container, repo=repository, tag=tag,
                            comment=comment, author=author, pause=pause)
        result = await self.api.execute(ep.post('/commit', query, body=config))
        return result['Id']
