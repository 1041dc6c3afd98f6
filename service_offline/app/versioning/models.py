"""
Cache key and manifest models.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field


VERSION_SEPARATOR = "-v"

_VERSION_PATTERN = re.compile(r"-?(?:0|[1-9][0-9]*)")


def cache_base_name(prefix: str, scope_url: str) -> str:
    """Base name shared by every cache version of one deployment.

    e.g. ``offline-https://example.com/``
    """
    return f"{prefix}-{scope_url}"


def normalize_resource_id(url: str, scope_url: str) -> str:
    """Strip the scope from an in-scope address.

    ``https://example.com/index.html`` becomes ``index.html``. An address equal
    to the scope itself is kept whole, since an empty key cannot be looked up.
    Out-of-scope addresses are returned unchanged.
    """
    if url.startswith(scope_url):
        url = url[len(scope_url):]

        if not url:
            url = scope_url

    return url


@functools.total_ordering
@dataclass(frozen=True)
class CacheKey:
    """Identity of one versioned cache. Ordered by version."""

    base_name: str
    version: int

    @property
    def name(self) -> str:
        """Flat entity name used by the store."""
        return f"{self.base_name}{VERSION_SEPARATOR}{self.version}"

    @classmethod
    def parse(cls, name: str, base_name: str) -> Optional["CacheKey"]:
        """Parse a store entity name, or return None if it is not ours or malformed."""
        prefix = f"{base_name}{VERSION_SEPARATOR}"
        if not name.startswith(prefix):
            return None

        suffix = name[len(prefix):]
        if not _VERSION_PATTERN.fullmatch(suffix):
            return None

        return cls(base_name=base_name, version=int(suffix))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CacheKey):
            return NotImplemented
        return self.version < other.version


class Manifest(BaseModel):
    """Versioned descriptor of the resource file set to cache."""

    version: int
    files: List[str] = Field(default_factory=list)

    def with_main_resource(self, main_resource_id: str) -> "Manifest":
        """Return a copy with the main document prepended to the file list."""
        if not main_resource_id:
            return self
        return self.model_copy(update={"files": [main_resource_id, *self.files]})
