"""Store client built from the ``elasticsearch`` section of migration options."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9200


def client_kwargs(section: dict[str, Any]) -> dict[str, Any]:
    """Translate an ``elasticsearch`` options section into client arguments.

    ``hosts`` is used as given. Otherwise a single host is built from ``host``
    (with or without a scheme) and ``port``. Every other key is passed through
    to ``AsyncElasticsearch`` unchanged.
    """
    kwargs = dict(section)
    host = kwargs.pop("host", DEFAULT_HOST)
    port = kwargs.pop("port", None)

    if "hosts" not in kwargs:
        url = host if "://" in host else f"http://{host}"
        if port is not None:
            url = f"{url}:{port}"
        elif urlsplit(url).port is None:
            url = f"{url}:{DEFAULT_PORT}"
        kwargs["hosts"] = [url]

    # JSON and YAML configs give a list
    if isinstance(kwargs.get("basic_auth"), list):
        kwargs["basic_auth"] = tuple(kwargs["basic_auth"])
    return kwargs


def create_async_elasticsearch_client(section: dict[str, Any]):
    """Create an async Elasticsearch client from an options section."""
    from elasticsearch import AsyncElasticsearch

    kwargs = client_kwargs(section)
    logger.debug("Creating Elasticsearch client for %s", kwargs["hosts"])
    return AsyncElasticsearch(**kwargs)


async def close_elasticsearch_client(client) -> None:
    """Close a client and its underlying connections."""
    if client:
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"Error closing Elasticsearch client: {e}")
