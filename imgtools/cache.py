"""Content-addressed cache for generated image variants.

Two on-disk layouts share the :class:`CacheStore` interface:

``FlatFileCache``
    ``<dir>/<id>`` files. The id hashes the source identity, the
    configuration and a cheap content proof: the source bytes for remote
    sources, the file modification time for local ones. A file restored
    with an old mtime after being edited will hit; that is the price of not
    reading the source.

``ManifestCache``
    ``<dir>/<source cache id>/index.json`` plus one file per variant. The
    manifest records a checksum of the whole source file, a mismatch drops
    the entire group.

Cache failures never reach the caller. They are logged at debug level and
the request is served as if caching were off.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol, Union
from urllib.parse import SplitResult, unquote

from .codec import read_file_metadata

logger = logging.getLogger("imgtools")

MANIFEST = "index.json"

# runtime-only fields, never persisted in a manifest
_TRANSIENT_FIELDS = ("src", "image", "imagePath")


@dataclass
class CacheOptions:
    enabled: bool = True
    dir: str = "./.cache/imgtools"
    # seconds since last use; 0 disables the sweep
    retention: int = 86400
    # "mtime" -> FlatFileCache, "checksum" -> ManifestCache
    mode: str = "mtime"


@dataclass
class CachedImage:
    path: Path
    metadata: Dict[str, Any]


def hash_parts(parts: Iterable[Union[str, bytes]]) -> str:
    h = hashlib.sha1()
    for part in parts:
        h.update(part.encode("utf-8") if isinstance(part, str) else part)
    return h.hexdigest()


def generate_cache_id(path: str) -> str:
    return hash_parts([path])


def checksum_file(algorithm: str, path: Union[str, Path]) -> str:
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            h.update(chunk)
    return h.hexdigest()


def config_json(config: Mapping[str, str]) -> str:
    return json.dumps(dict(config), separators=(",", ":"), ensure_ascii=False)


def local_path(url: SplitResult, root: Union[str, Path] = ".") -> Path:
    p = Path(unquote(url.path))
    return p if p.is_absolute() else Path(root) / p


def source_identity(url: SplitResult, root: Union[str, Path] = ".") -> str:
    """Query-less identity; local paths are made relative so ids match across machines."""

    if url.netloc:
        return f"{url.scheme}://{url.netloc}{url.path}"
    rel = os.path.relpath(local_path(url, root), os.path.abspath(root))
    return "file:///" + Path(rel).as_posix()


def generate_image_id(
    url: SplitResult,
    config: Mapping[str, str],
    image_buffer: Optional[bytes] = None,
    root: Union[str, Path] = ".",
) -> str:
    identity = source_identity(url, root)
    if url.netloc:
        return hash_parts([identity, config_json(config), image_buffer or b""])
    mtime_ms = local_path(url, root).stat().st_mtime_ns // 1_000_000
    return hash_parts([identity, config_json(config), str(mtime_ms)])


@dataclass
class Source:
    """A source image as the cache sees it."""

    url: SplitResult
    root: Union[str, Path] = "."
    buffer: Optional[bytes] = None
    _checksum: Optional[str] = field(default=None, repr=False)

    @property
    def is_remote(self) -> bool:
        return bool(self.url.netloc)

    @property
    def path(self) -> Path:
        return local_path(self.url, self.root)

    @property
    def identity(self) -> str:
        return source_identity(self.url, self.root)

    def read(self) -> bytes:
        if self.buffer is None:
            self.buffer = self.path.read_bytes()
        return self.buffer

    def checksum(self) -> str:
        if self._checksum is None:
            if self.is_remote:
                self._checksum = hash_parts([self.read()])
            else:
                self._checksum = checksum_file("sha1", self.path)
        return self._checksum


class CacheStore(Protocol):
    def image_id(self, source: Source, config: Mapping[str, str]) -> str: ...

    def lookup(self, image_id: str, source: Source) -> Optional[CachedImage]: ...

    def store(self, image_id: str, data: bytes, metadata: Dict[str, Any], source: Source) -> Optional[Path]: ...

    def sweep(self, retention: float) -> int: ...


def atomic_write(path: Path, data: bytes) -> None:
    """Readers see either nothing or the complete file."""

    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        tmp.write_bytes(data)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _touch(path: Path) -> None:
    now = time.time()
    os.utime(path, (now, now))


def _is_stale(path: Path, retention: float, now: float) -> bool:
    return now - path.stat().st_mtime > retention


class FlatFileCache:
    def __init__(self, directory: Union[str, Path]):
        self.dir = Path(directory)
        self.dir.mkdir(parents=True, exist_ok=True)

    def image_id(self, source: Source, config: Mapping[str, str]) -> str:
        return generate_image_id(source.url, config, source.read() if source.is_remote else None, source.root)

    def lookup(self, image_id: str, source: Source) -> Optional[CachedImage]:
        path = self.dir / image_id
        if not path.is_file():
            return None
        try:
            metadata = read_file_metadata(path)
            _touch(path)
        except (OSError, ValueError) as e:
            logger.debug("unreadable cached image %s: %s", image_id, e)
            path.unlink(missing_ok=True)
            return None
        return CachedImage(path, metadata)

    def store(self, image_id: str, data: bytes, metadata: Dict[str, Any], source: Source) -> Optional[Path]:
        path = self.dir / image_id
        try:
            atomic_write(path, data)
        except OSError as e:
            logger.debug("could not cache image %s: %s", image_id, e)
            return None
        return path

    def sweep(self, retention: float) -> int:
        removed = 0
        now = time.time()
        for entry in self.dir.iterdir():
            if not entry.is_file():
                continue
            try:
                if _is_stale(entry, retention, now):
                    logger.debug("deleting stale cached image %s", entry.name)
                    entry.unlink()
                    removed += 1
            except OSError as e:
                logger.debug("could not sweep %s: %s", entry.name, e)
        return removed


def _persistable(metadata: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in metadata.items():
        if k in _TRANSIENT_FIELDS or isinstance(v, (bytes, bytearray)):
            continue
        out[k] = v
    return out


class ManifestCache:
    def __init__(self, directory: Union[str, Path]):
        self.dir = Path(directory)
        self.dir.mkdir(parents=True, exist_ok=True)
        # one lock per source group, index.json is read-modify-write
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _group_lock(self, group: Path) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(group.name, threading.Lock())

    def group(self, source: Source) -> Path:
        return self.dir / generate_cache_id(source.identity)

    def image_id(self, source: Source, config: Mapping[str, str]) -> str:
        return hash_parts([source.identity, config_json(config), source.checksum()])

    def _read_manifest(self, group: Path) -> Dict[str, Any]:
        manifest = json.loads((group / MANIFEST).read_text(encoding="utf-8"))
        if not isinstance(manifest, dict) or not isinstance(manifest.get("metadata"), list):
            raise ValueError("malformed manifest")
        return manifest

    def _discard(self, group: Path, reason: Any) -> None:
        logger.debug("discarding cache group %s: %s", group.name, reason)
        shutil.rmtree(group, ignore_errors=True)

    def lookup(self, image_id: str, source: Source) -> Optional[CachedImage]:
        group = self.group(source)
        with self._group_lock(group):
            return self._lookup(group, image_id, source)

    def _lookup(self, group: Path, image_id: str, source: Source) -> Optional[CachedImage]:
        if not (group / MANIFEST).is_file():
            return None
        try:
            manifest = self._read_manifest(group)
            if manifest.get("checksum") != source.checksum():
                self._discard(group, "source changed")
                return None
            entry = next((m for m in manifest["metadata"] if m.get("id") == image_id), None)
            path = group / image_id
            if entry is None or not path.is_file():
                return None
            _touch(group / MANIFEST)
        except (OSError, ValueError) as e:
            self._discard(group, e)
            return None
        metadata = {k: v for k, v in entry.items() if k != "id"}
        return CachedImage(path, metadata)

    def store(self, image_id: str, data: bytes, metadata: Dict[str, Any], source: Source) -> Optional[Path]:
        group = self.group(source)
        with self._group_lock(group):
            return self._store(group, image_id, data, metadata, source)

    def _store(self, group: Path, image_id: str, data: bytes, metadata: Dict[str, Any], source: Source) -> Optional[Path]:
        path = group / image_id
        try:
            group.mkdir(parents=True, exist_ok=True)
            try:
                manifest = self._read_manifest(group)
                if manifest.get("checksum") != source.checksum():
                    raise ValueError("source changed")
            except (OSError, ValueError):
                manifest = {"checksum": source.checksum(), "created": time.time(), "metadata": []}
            entries = [m for m in manifest["metadata"] if m.get("id") != image_id]
            entries.append({"id": image_id, **_persistable(metadata)})
            manifest["metadata"] = entries
            atomic_write(path, data)
            atomic_write(group / MANIFEST, json.dumps(manifest, ensure_ascii=False, indent=2).encode("utf-8"))
        except (OSError, TypeError, ValueError) as e:
            logger.debug("could not cache image %s: %s", image_id, e)
            path.unlink(missing_ok=True)
            return None
        return path

    def sweep(self, retention: float) -> int:
        removed = 0
        now = time.time()
        for group in self.dir.iterdir():
            if not group.is_dir():
                continue
            try:
                self._read_manifest(group)
                stale = _is_stale(group / MANIFEST, retention, now)
            except (OSError, ValueError) as e:
                self._discard(group, e)
                removed += 1
                continue
            if stale:
                self._discard(group, "stale")
                removed += 1
        return removed


def make_cache(options: CacheOptions) -> Optional[CacheStore]:
    if not options.enabled:
        return None
    if options.mode == "mtime":
        return FlatFileCache(options.dir)
    if options.mode == "checksum":
        return ManifestCache(options.dir)
    raise ValueError(f"Unknown cache mode '{options.mode}'. Available: ['mtime', 'checksum']")
