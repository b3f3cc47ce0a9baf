"""Remote CUE schema retrieval with a process-lifetime cache."""

from __future__ import annotations

import logging
import threading

import httpx

from gemara_authoring import __version__
from gemara_authoring.models.artifacts import Layer

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA_BASE_URL = "https://raw.githubusercontent.com/ossf/gemara/main/schemas"

# Fragments every layer schema is composed with.
SHARED_FRAGMENTS: tuple[str, ...] = ("base", "metadata", "mapping")

_HEADERS = {"User-Agent": f"gemara-authoring/{__version__}"}


class SchemaError(Exception):
    """Base class for failures while obtaining or applying a schema."""


class SchemaFetchError(SchemaError):
    """A schema fragment could not be downloaded (transport error or non-200)."""


class SchemaSource:
    """Fetches schema fragments by name and keeps them for the instance lifetime.

    Names are ``base``, ``metadata``, ``mapping`` and ``layer-<N>``; each maps
    to ``<base_url>/<name>.cue``.  Successful fetches are cached without
    expiry; failures are never cached, so the next call tries again.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SCHEMA_BASE_URL,
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, headers=_HEADERS)
        self._lock = threading.Lock()
        self._cache: dict[str, str] = {}

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def cached_names(self) -> list[str]:
        with self._lock:
            return sorted(self._cache)

    def url_for(self, name: str) -> str:
        return f"{self._base_url}/{name}.cue"

    def fetch(self, name: str) -> str:
        """Return the text of schema fragment *name*.

        Raises ``SchemaFetchError`` on any transport failure or non-200 reply.
        """
        name = name.removesuffix(".cue")
        with self._lock:
            cached = self._cache.get(name)
        if cached is not None:
            return cached

        url = self.url_for(name)
        logger.debug("Fetching schema %s from %s", name, url)
        try:
            resp = self._client.get(url)
        except httpx.HTTPError as exc:
            raise SchemaFetchError(f"failed to fetch schema from {url}: {exc}") from exc
        if resp.status_code != httpx.codes.OK:
            raise SchemaFetchError(
                f"failed to fetch schema {name}: HTTP {resp.status_code}"
            )

        with self._lock:
            # A concurrent fetch may have won; keep the first stored copy.
            return self._cache.setdefault(name, resp.text)

    def layer_schema(self, layer: Layer | int) -> str:
        return self.fetch(f"layer-{int(layer)}")

    def shared_schemas(self) -> dict[str, str]:
        """All shared fragments keyed by name, in composition order."""
        return {name: self.fetch(name) for name in SHARED_FRAGMENTS}

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
