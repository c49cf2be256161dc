"""Online schema migrations for Elasticsearch-backed indices.

Independently versioned plugins declare mapping changes, document transforms
and seed documents against one shared index. A migration applies everything
not yet applied as a single cutover to a fresh index, then repoints the
index alias:

- **Documents**: conversion between raw store documents and standard documents
- **Pipeline**: composition of transform migrations and seed expansion
- **State**: checksum, persisted migration state and unapplied-migration resolution
- **Plan**: merged strict mappings and the ordered list of unapplied migrations
- **Persistence**: the store operations making up the cutover
- **Migrator**: the run itself, from checking to migrated

Example:
    ```python
    from elasticsearch import AsyncElasticsearch
    from dataknobs_index_migrations import (
        MigrationOptions, Plugin, SeedMigration, StandardDocument, migrate,
    )

    plugins = [
        Plugin(
            id="widgets",
            mappings={"widget": {"properties": {"n": {"type": "integer"}}}},
            migrations=[
                SeedMigration("seed", seed=lambda: StandardDocument(
                    type="widget", id="first", attributes={"n": 1}
                )),
            ],
        ),
    ]
    options = MigrationOptions(client=AsyncElasticsearch("http://localhost:9200"),
                               index="app", plugins=plugins)
    result = await migrate(options)
    ```
"""

from .api import (
    PluginMigrations,
    dry_run,
    fetch_status,
    is_index_migrated,
    migrate,
    reset_index,
)
from .client import (
    client_kwargs,
    close_elasticsearch_client,
    create_async_elasticsearch_client,
)
from .documents import (
    Document,
    DocumentKind,
    RawDocument,
    StandardDocument,
    document_kind,
    to_raw,
    to_standard,
)
from .exceptions import (
    BulkItemError,
    ConcurrencyError,
    ConfigurationError,
    DestinationExistsError,
    DocumentFormatError,
    DuplicateMigrationIdError,
    IndexMigrationError,
    InvalidTransitionError,
    MappingConflictError,
    MigrationInProgressError,
    MigrationOrderError,
    OperationError,
    ValidationError,
)
from .migrator import IndexMigrator, MigrationResult
from .options import MigrationOptions
from .persistence import IndexStore
from .pipeline import build_transform, seeded_docs
from .plan import MigrationPlan, build_mappings
from .plugins import MappingMigration, Migration, Plugin, SeedMigration, TransformMigration
from .state import (
    MIGRATION_DOC_ID,
    MigrationState,
    MigrationStatus,
    PluginState,
    checksum,
)
from .transitions import RunStatus

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Entry points
    "migrate",
    "dry_run",
    "is_index_migrated",
    "fetch_status",
    "reset_index",
    "PluginMigrations",
    "MigrationOptions",
    "MigrationResult",
    "IndexMigrator",
    "RunStatus",
    # Plugins
    "Plugin",
    "Migration",
    "SeedMigration",
    "TransformMigration",
    "MappingMigration",
    # Documents
    "Document",
    "DocumentKind",
    "RawDocument",
    "StandardDocument",
    "document_kind",
    "to_raw",
    "to_standard",
    # Pipeline, state and plan
    "build_transform",
    "seeded_docs",
    "checksum",
    "MIGRATION_DOC_ID",
    "MigrationState",
    "MigrationStatus",
    "PluginState",
    "MigrationPlan",
    "build_mappings",
    # Store
    "IndexStore",
    "client_kwargs",
    "create_async_elasticsearch_client",
    "close_elasticsearch_client",
    # Exceptions
    "IndexMigrationError",
    "ValidationError",
    "ConfigurationError",
    "OperationError",
    "ConcurrencyError",
    "DocumentFormatError",
    "MigrationOrderError",
    "DuplicateMigrationIdError",
    "MappingConflictError",
    "BulkItemError",
    "DestinationExistsError",
    "MigrationInProgressError",
    "InvalidTransitionError",
]
