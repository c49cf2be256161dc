"""Options accepted by the migration entry points."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .client import close_elasticsearch_client, create_async_elasticsearch_client
from .exceptions import ConfigurationError
from .persistence import DEFAULT_SCROLL_SIZE
from .plugins import Plugin

logger = logging.getLogger("dataknobs_index_migrations")

DEST_INDEX_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def _invalid(parameter: str, message: str) -> ConfigurationError:
    return ConfigurationError(
        f"Configuration error for '{parameter}': {message}", context={"parameter": parameter}
    )


@dataclass
class MigrationOptions:
    """Everything a migration run needs.

    Attributes:
        client: ``AsyncElasticsearch`` client (or compatible object)
        index: Name of the index (alias) being migrated
        plugins: Enabled plugins, in host order
        logger: Logger for progress messages
        scroll_size: Documents per scroll page when transforming
        dest_index: Destination index name, ``"{index}-{timestamp}"`` by default
        initial_index: Concrete index backing a newly created or converted
            index, ``"{index}-original"`` by default
        force: Rebuild an existing destination index and take over an
            interrupted migration
        owns_client: Whether ``close`` closes ``client``. Set by ``from_dict``
            when it builds the client; a client passed in stays the caller's
            to close.

    Example:
        ```python
        async with MigrationOptions.from_dict({
            "elasticsearch": {"host": "localhost", "port": 9200},
            "index": "app",
            "plugins": plugins,
        }) as options:
            await migrate(options)
        ```
    """

    client: Any
    index: str
    plugins: list[Plugin]
    logger: logging.Logger | None = None
    scroll_size: int = DEFAULT_SCROLL_SIZE
    dest_index: str | None = None
    initial_index: str | None = None
    force: bool = False
    owns_client: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> MigrationOptions:
        """Create from a configuration dictionary.

        Either ``client`` or an ``elasticsearch`` connection section (see
        ``client.client_kwargs``) must be present. A client built from the
        section is closed by ``close``.
        """
        client = config.get("client")
        owns_client = False
        if client is None and "elasticsearch" in config:
            client = create_async_elasticsearch_client(config["elasticsearch"])
            owns_client = True

        return cls(
            client=client,
            index=config.get("index", ""),
            plugins=config.get("plugins", []),
            logger=config.get("logger"),
            scroll_size=config.get("scroll_size", DEFAULT_SCROLL_SIZE),
            dest_index=config.get("dest_index"),
            initial_index=config.get("initial_index"),
            force=config.get("force", False),
            owns_client=owns_client,
        )

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for unusable options."""
        if self.client is None:
            raise _invalid("client", "a store client is required")
        if not isinstance(self.index, str) or not self.index:
            raise _invalid("index", "must be a non-empty string")
        if not isinstance(self.plugins, list):
            raise _invalid("plugins", "must be a list of Plugin objects")

        seen: set[str] = set()
        for plugin in self.plugins:
            if not isinstance(plugin, Plugin):
                raise _invalid("plugins", f"expected Plugin, got {type(plugin).__name__}")
            if plugin.id in seen:
                raise _invalid("plugins", f'plugin "{plugin.id}" is listed more than once')
            seen.add(plugin.id)

        if not isinstance(self.scroll_size, int) or self.scroll_size <= 0:
            raise _invalid("scroll_size", "must be a positive integer")

    async def close(self) -> None:
        """Close the client if these options created it."""
        if self.owns_client:
            await close_elasticsearch_client(self.client)

    async def __aenter__(self) -> MigrationOptions:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def log(self) -> logging.Logger:
        return self.logger or logger

    def resolve_initial_index(self) -> str:
        return self.initial_index or f"{self.index}-original"

    def resolve_dest_index(self, now: datetime | None = None) -> str:
        if self.dest_index:
            return self.dest_index
        now = now or datetime.now(timezone.utc)
        return f"{self.index}-{now.strftime(DEST_INDEX_TIMESTAMP_FORMAT)}"
