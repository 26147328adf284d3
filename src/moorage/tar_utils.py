"""
TAR Archive utilities for archive uploads and build contexts
"""

import io
import os
import tarfile
from typing import Dict, Optional


def create_tar_from_file(file_path: str, arcname: Optional[str] = None) -> bytes:
    """
    Create tar archive from a single file

    Args:
        file_path: Path to file to archive
        arcname: Name of file in archive (default: basename of file_path)

    Returns:
        Tar archive as bytes
    """
    if arcname is None:
        arcname = os.path.basename(file_path)

    tar_stream = io.BytesIO()

    with tarfile.open(fileobj=tar_stream, mode='w') as tar:
        tar.add(file_path, arcname=arcname)

    return tar_stream.getvalue()


def create_tar_from_bytes(files: Dict[str, bytes], mode: int = 0o644) -> bytes:
    """
    Create tar archive from in-memory file contents

    Args:
        files: Mapping of archive name to content
        mode: Permission bits for every member

    Returns:
        Tar archive as bytes
    """
    tar_stream = io.BytesIO()

    with tarfile.open(fileobj=tar_stream, mode='w') as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            info.mode = mode
            tar.addfile(info, io.BytesIO(content))

    return tar_stream.getvalue()


def read_dockerignore(context_path: str) -> list:
    """Patterns from the context's .dockerignore, if any"""
    ignore_file = os.path.join(context_path, '.dockerignore')
    if not os.path.exists(ignore_file):
        return []
    with open(ignore_file, 'r', encoding='utf-8') as f:
        return [line.strip() for line in f if line.strip() and not line.startswith('#')]


def create_build_context(context_path: str) -> bytes:
    """
    Create a build context archive

    Files are stored relative to the context root. Top-level entries named in
    ``.dockerignore`` are skipped.

    Args:
        context_path: Directory holding the Dockerfile

    Returns:
        Tar archive as bytes

    Raises:
        FileNotFoundError: context_path is not a directory
    """
    if not os.path.isdir(context_path):
        raise FileNotFoundError(f"Build context not found: {context_path}")

    ignored = set(p.strip('/') for p in read_dockerignore(context_path))
    tar_stream = io.BytesIO()

    with tarfile.open(fileobj=tar_stream, mode='w') as tar:
        for entry in sorted(os.listdir(context_path)):
            if entry in ignored:
                continue
            tar.add(os.path.join(context_path, entry), arcname=entry)

    return tar_stream.getvalue()


def list_tar_contents(tar_data: bytes) -> list:
    """
    List contents of tar archive

    Args:
        tar_data: Tar archive as bytes

    Returns:
        List of filenames in archive
    """
    tar_stream = io.BytesIO(tar_data)

    with tarfile.open(fileobj=tar_stream, mode='r') as tar:
        return tar.getnames()


def extract_file(tar_data: bytes, filename: str) -> bytes:
    """
    Read one member's content from a tar archive

    Raises:
        KeyError: filename is not in the archive
    """
    tar_stream = io.BytesIO(tar_data)

    with tarfile.open(fileobj=tar_stream, mode='r') as tar:
        member = tar.getmember(filename)
        extracted = tar.extractfile(member)
        if extracted is None:
            raise KeyError(f"{filename} is not a regular file")
        return extracted.read()
