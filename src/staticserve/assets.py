"""
=============================================================================
ASSET STORE
=============================================================================

A read-only, in-memory snapshot of the site content.

=============================================================================
WHERE THE CONTENT COMES FROM
=============================================================================

    staticserve/                     (installed package)
    ├── __init__.py
    ├── server.py
    └── static/          ◄── mounted as the virtual root "/"
        ├── index.html       GET /            → index.html
        ├── css/site.css     GET /css/site.css
        └── js/app.js        GET /js/app.js

The static/ directory ships as package data, so the site travels with
the code just like files embedded into a binary. AssetStore.from_package()
reads it through importlib.resources, which works for wheels, editable
installs and zip imports alike.

AssetStore.from_directory() mounts a plain directory instead. The CLI's
-dir flag and the tests use it.

Either way the whole tree is read ONCE at startup. After that the store is
never mutated, so every worker thread can read it without locks.

=============================================================================
THE BOUNDARY
=============================================================================

Lookups are confined to the mounted root. Paths are normalized purely
lexically, and anything that tries to climb out is simply "not found":

    "/css/site.css"          → "css/site.css"      found
    "/css/./site.css"        → "css/site.css"      found
    "/../secret.txt"         → rejected            not found
    "/css/../../etc/passwd"  → rejected            not found
    "/css\\..\\x"            → rejected            not found
    "/a\x00b"                → rejected            not found

Since the store never consults the filesystem after loading, there is no
symlink or race to exploit at request time.

=============================================================================
ENTITY TAGS
=============================================================================

Bundled package data has no meaningful modification time (an installed
wheel stamps every file with the install time), so entries loaded with
from_package() carry mtime=None and rely on their ETag alone. The ETag is
a SHA-256 prefix of the bytes, which stays stable across restarts and
machines. Directory mounts also record the file's mtime, enabling
Last-Modified and If-Modified-Since.

=============================================================================
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Union

from .http.mime_types import get_content_type


logger = logging.getLogger(__name__)


class AssetMountError(Exception):
    """The content root could not be mounted (missing or not a directory)."""


class AssetNotFoundError(LookupError):
    """No entry exists at the requested path, or it lies outside the root."""

    def __init__(self, path: str):
        super().__init__(f"asset not found: {path!r}")
        self.path = path


@dataclass(frozen=True)
class AssetEntry:
    """
    One file or directory in the store.

    Attributes:
        path: Normalized relative path ("" for the root, no leading slash).
        content: File bytes (empty for directories).
        mtime: Last modification time in UTC, truncated to whole seconds,
               or None when unknown.
        content_type: Content-Type header value.
        etag: Strong entity tag, quotes included. Empty for directories.
        is_dir: Whether this entry is a directory.
        children: Sorted child names for directories.
    """

    path: str
    content: bytes = b""
    mtime: Optional[datetime] = None
    content_type: str = ""
    etag: str = ""
    is_dir: bool = False
    children: tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


def make_etag(content: bytes) -> str:
    """Strong validator derived from the bytes alone."""
    return '"' + hashlib.sha256(content).hexdigest()[:16] + '"'


def normalize(path: str) -> Optional[str]:
    """
    Reduce a URL path to a store key, or None if it escapes the root.

        >>> normalize("/css//site.css")
        'css/site.css'
        >>> normalize("/") == ""
        True
        >>> normalize("/a/../b") is None
        True
    """
    if "\\" in path or "\x00" in path:
        return None

    segments = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            return None
        segments.append(segment)

    return "/".join(segments)


# pathlib.Path or an importlib.resources Traversable; both offer
# name, iterdir(), is_dir(), is_file() and read_bytes()
Node = Any


class AssetStore:
    """
    Immutable mapping from normalized path to AssetEntry.

    =========================================================================
    USAGE
    =========================================================================

        store = AssetStore.from_package()          # bundled static/
        store = AssetStore.from_directory("site")  # a local directory

        entry = store.lookup("/css/site.css")      # AssetEntry or None
        entry = store.open("css/site.css")         # or AssetNotFoundError
        store.list_dir("/")                        # [AssetEntry, ...]

    =========================================================================
    """

    # Like embedded file trees, names starting with these are left out
    HIDDEN_PREFIXES = (".", "_")

    def __init__(self, entries: Mapping[str, AssetEntry], origin: str = "<memory>"):
        if "" not in entries or not entries[""].is_dir:
            raise AssetMountError("asset tree has no root directory")
        self._entries = MappingProxyType(dict(entries))
        self.origin = origin

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def from_package(cls, package: str = "staticserve", subdir: str = "static") -> "AssetStore":
        """
        Mount `subdir` of an installed package.

        Raises:
            AssetMountError: If the package or the subdirectory is missing.
        """
        try:
            root = resources.files(package).joinpath(subdir)
        except (ModuleNotFoundError, TypeError) as e:
            raise AssetMountError(f"cannot mount {package}/{subdir}: {e}") from e

        if not root.is_dir():
            raise AssetMountError(f"cannot mount {package}/{subdir}: not a directory")

        store = cls(cls._load(root, with_mtime=False), origin=f"{package}/{subdir}")
        logger.debug(f"Mounted {len(store)} bundled assets from {store.origin}")
        return store

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "AssetStore":
        """
        Mount a filesystem directory.

        Raises:
            AssetMountError: If the path does not exist or is not a directory.
        """
        root = Path(directory)
        if not root.is_dir():
            raise AssetMountError(f"cannot mount {directory}: not a directory")

        store = cls(cls._load(root, with_mtime=True), origin=str(root.resolve()))
        logger.debug(f"Mounted {len(store)} assets from {store.origin}")
        return store

    @classmethod
    def _load(cls, root: Node, with_mtime: bool) -> dict[str, AssetEntry]:
        entries: dict[str, AssetEntry] = {}
        cls._load_dir(root, "", entries, with_mtime)
        return entries

    @classmethod
    def _load_dir(cls, node: Node, prefix: str, entries: dict, with_mtime: bool) -> None:
        children = []

        for child in sorted(node.iterdir(), key=lambda c: c.name):
            if child.name.startswith(cls.HIDDEN_PREFIXES):
                continue

            path = f"{prefix}/{child.name}" if prefix else child.name

            if child.is_dir():
                if isinstance(child, Path) and child.is_symlink():
                    logger.debug(f"Skipping symlinked directory {path}")
                    continue
                cls._load_dir(child, path, entries, with_mtime)
                children.append(child.name)
            elif child.is_file():
                content = child.read_bytes()
                entries[path] = AssetEntry(
                    path=path,
                    content=content,
                    mtime=_mtime_of(child) if with_mtime else None,
                    content_type=get_content_type(child.name, content),
                    etag=make_etag(content),
                )
                children.append(child.name)

        entries[prefix] = AssetEntry(
            path=prefix,
            mtime=_mtime_of(node) if with_mtime else None,
            is_dir=True,
            children=tuple(children),
        )

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def lookup(self, path: str) -> Optional[AssetEntry]:
        """Entry at `path`, or None if missing or outside the root."""
        key = normalize(path)
        if key is None:
            return None
        return self._entries.get(key)

    def open(self, path: str) -> AssetEntry:
        """Like lookup(), but raises AssetNotFoundError."""
        entry = self.lookup(path)
        if entry is None:
            raise AssetNotFoundError(path)
        return entry

    def list_dir(self, path: str) -> list[AssetEntry]:
        """
        Entries directly under a directory, sorted by name.

        Raises:
            AssetNotFoundError: If `path` is not a directory in the store.
        """
        entry = self.open(path)
        if not entry.is_dir:
            raise AssetNotFoundError(path)
        prefix = f"{entry.path}/" if entry.path else ""
        return [self._entries[prefix + name] for name in entry.children]

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.lookup(path) is not None

    def __iter__(self) -> Iterator[str]:
        """Iterate over file paths (directories excluded)."""
        return (p for p, e in self._entries.items() if not e.is_dir)

    def __len__(self) -> int:
        return sum(1 for e in self._entries.values() if not e.is_dir)

    def __repr__(self) -> str:
        return f"AssetStore(origin={self.origin!r}, files={len(self)})"


def _mtime_of(node: Path) -> datetime:
    stat = node.stat()
    return datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc)
