"""
CLI - command line interface
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from .client import EngineClient
from .config import SettingsManager
from .exceptions import DecodeError, EngineException
from .stream_reader import Channel

logger = logging.getLogger(__name__)


def cpu_percent(stats: Dict[str, Any]) -> float:
    """CPU usage from one stats sample, as ``docker stats`` computes it"""
    cpu = stats.get('cpu_stats') or {}
    precpu = stats.get('precpu_stats') or {}
    cpu_delta = (cpu.get('cpu_usage', {}).get('total_usage', 0)
                 - precpu.get('cpu_usage', {}).get('total_usage', 0))
    system_delta = cpu.get('system_cpu_usage', 0) - precpu.get('system_cpu_usage', 0)
    online = cpu.get('online_cpus') or len(cpu.get('cpu_usage', {}).get('percpu_usage') or []) or 1
    if cpu_delta <= 0 or system_delta <= 0:
        return 0.0
    return cpu_delta / system_delta * online * 100.0


def format_bytes(size: float) -> str:
    for unit in ('B', 'KiB', 'MiB', 'GiB'):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TiB"


class EngineCLI:
    """Container engine CLI interface"""

    def __init__(self, client: EngineClient):
        self.client = client

    async def ping(self):
        print(await self.client.ping())

    async def version(self):
        """Show engine version"""
        info = await self.client.version()
        print("Engine information:")
        print(f"  Version: {info.get('Version', 'Unknown')}")
        print(f"  API: {info.get('ApiVersion', 'Unknown')}")
        print(f"  OS/Arch: {info.get('Os', '?')}/{info.get('Arch', '?')}")
        components = [c.get('Name', '') for c in info.get('Components') or []]
        if components:
            print(f"  Components: {', '.join(components)}")

    async def list_containers(self, all_containers: bool = False):
        """List containers"""
        containers = await self.client.containers.list(all=all_containers)

        if not containers:
            logger.info("No containers found")
            return

        # Header
        print(f"{'NAME':<30} {'STATUS':<15} {'IMAGE':<40} {'ID':<15}")
        print("-" * 100)

        for c in containers:
            print(f"{c.name:<30} {c.status:<15} {c.image:<40} {c.short_id:<15}")

        print(f"\nTotal: {len(containers)}")

    async def list_images(self):
        """List images"""
        images = await self.client.images.list()

        if not images:
            logger.info("No images found")
            return

        print(f"{'REPOSITORY:TAG':<50} {'ID':<15} {'SIZE':<10}")
        print("-" * 75)

        for image in images:
            size = format_bytes(image.attrs.get('Size', 0))
            for tag in image.tags or ['<none>:<none>']:
                print(f"{tag:<50} {image.short_id:<15} {size:<10}")

        print(f"\nTotal: {len(images)}")

    async def pull(self, image: str):
        """Pull image, printing progress lines"""
        def show(status):
            if status.id:
                print(f"{status.id}: {status.status} {status.progress or ''}".rstrip())
            else:
                print(status.status)

        result = await self.client.images.pull(image, progress=show)
        print(f"Digest: {result.digest}")

    async def logs(self, name: str, follow: bool = False, tail: Optional[int] = None,
                   timestamps: bool = False):
        """Show container logs"""
        frames = await self.client.containers.logs(
            name, follow=follow, tail=tail if tail is not None else 'all', timestamps=timestamps,
        )
        async with frames:
            async for frame in frames:
                out = sys.stderr if frame.channel == Channel.STDERR else sys.stdout
                out.buffer.write(frame.payload)
                out.flush()

    async def events(self):
        """Follow engine events"""
        events = await self.client.events()
        async with events:
            async for event in events:
                if isinstance(event, DecodeError):
                    # undecodable line
                    continue
                subject = event.name or event.actor_id[:12]
                print(f"{event.time.isoformat()} {event.type} {event.action} {subject}")

    async def stats(self, name: str, stream: bool = True):
        """Show container resource usage"""
        print(f"{'CPU %':<10} {'MEM USAGE':<12} {'MEM LIMIT':<12}")

        def show(sample: Dict[str, Any]):
            memory = sample.get('memory_stats') or {}
            print(f"{cpu_percent(sample):<10.2f} {format_bytes(memory.get('usage', 0)):<12} "
                  f"{format_bytes(memory.get('limit', 0)):<12}")

        if not stream:
            show(await self.client.containers.stats(name, stream=False))
            return
        samples = await self.client.containers.stats(name)
        async with samples:
            async for sample in samples:
                if isinstance(sample, dict):
                    show(sample)

    async def attach(self, name: str):
        """Attach the terminal to a running container"""
        loop = asyncio.get_running_loop()
        stdin = asyncio.StreamReader()
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(stdin), sys.stdin)

        async with await self.client.containers.attach(name) as session:
            async def forward_input():
                while True:
                    data = await stdin.read(4096)
                    if not data:
                        await session.close_stdin()
                        return
                    await session.write(data)

            input_task = loop.create_task(forward_input())
            try:
                async for frame in session:
                    out = sys.stderr if frame.channel == Channel.STDERR else sys.stdout
                    out.buffer.write(frame.payload)
                    out.flush()
            finally:
                input_task.cancel()
                await asyncio.gather(input_task, return_exceptions=True)

    async def remove(self, name: str, force: bool = False):
        await self.client.containers.remove(name, force=force)
        logger.info(f"Container {name} removed")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='moorage',
        description='moorage - container engine client',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Usage examples:
  %(prog)s ps -a                                   # List all containers
  %(prog)s pull alpine:3.19
  %(prog)s logs -f --tail 50 web
  %(prog)s attach web
  %(prog)s --host unix:///run/podman/podman.sock version
"""
    )
    parser.add_argument('--host', help='Engine socket path or URL (default: auto-detect)')
    parser.add_argument('--timeout', type=float, help='Request timeout in seconds')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='action', required=True, metavar='action')
    sub.add_parser('ping', help='Check the engine is reachable')
    sub.add_parser('version', help='Show engine version')

    ps = sub.add_parser('ps', help='List containers')
    ps.add_argument('-a', '--all', action='store_true', help='Show all containers')

    sub.add_parser('images', help='List images')

    pull = sub.add_parser('pull', help='Pull an image')
    pull.add_argument('image')

    logs = sub.add_parser('logs', help='Show container logs')
    logs.add_argument('container')
    logs.add_argument('-f', '--follow', action='store_true', help='Follow log output')
    logs.add_argument('--tail', type=int, help='Number of log lines')
    logs.add_argument('-t', '--timestamps', action='store_true', help='Show timestamps')

    sub.add_parser('events', help='Follow engine events')

    stats = sub.add_parser('stats', help='Show container resource usage')
    stats.add_argument('container')
    stats.add_argument('--no-stream', action='store_true', help='Print one sample and exit')

    attach = sub.add_parser('attach', help='Attach to a running container')
    attach.add_argument('container')

    rm = sub.add_parser('rm', help='Remove a container')
    rm.add_argument('container')
    rm.add_argument('-f', '--force', action='store_true', help='Force removal')
    return parser


async def dispatch(cli: EngineCLI, args: argparse.Namespace):
    if args.action == 'ping':
        await cli.ping()
    elif args.action == 'version':
        await cli.version()
    elif args.action == 'ps':
        await cli.list_containers(all_containers=args.all)
    elif args.action == 'images':
        await cli.list_images()
    elif args.action == 'pull':
        await cli.pull(args.image)
    elif args.action == 'logs':
        await cli.logs(args.container, follow=args.follow, tail=args.tail, timestamps=args.timestamps)
    elif args.action == 'events':
        await cli.events()
    elif args.action == 'stats':
        await cli.stats(args.container, stream=not args.no_stream)
    elif args.action == 'attach':
        await cli.attach(args.container)
    elif args.action == 'rm':
        await cli.remove(args.container, force=args.force)


async def run_cli(argv: Optional[List[str]] = None, settings_manager: Optional[SettingsManager] = None) -> int:
    """Run one CLI command; returns the process exit status"""
    args = build_parser().parse_args(argv)
    manager = settings_manager or SettingsManager()
    settings = manager.client_settings()

    level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(message)s')

    try:
        client = EngineClient(base_url=args.host, timeout=args.timeout, settings=settings)
    except FileNotFoundError as e:
        logger.error(f"Error: {e}")
        return 1

    async with client:
        try:
            await dispatch(EngineCLI(client), args)
        except EngineException as e:
            logger.error(f"Error: {e}")
            return 1
    return 0


def main():
    """Start CLI application"""
    try:
        sys.exit(asyncio.run(run_cli()))
    except KeyboardInterrupt:
        logger.info("\n\nInterrupted by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
