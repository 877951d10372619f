"""Database migrations and schema management for convrag.

Migrations are named, registered once, and applied in registration order.
Each applied name is recorded in schema_migrations, so running the migrator
again only applies steps it has not seen. Migrations are forward-only: a
failing step is rolled back on its own and aborts startup.
"""

import logging
import sqlite3
from dataclasses import dataclass

from convrag.db.connection import Database

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """Raised when a migration cannot be registered or applied."""

    pass


MIGRATIONS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    name TEXT PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""


@dataclass(frozen=True)
class Migration:
    """A single named schema step."""

    name: str
    statements: tuple[str, ...]


class Migrator:
    """Ordered registry of migrations for one schema."""

    def __init__(self) -> None:
        self._migrations: list[Migration] = []

    @property
    def migrations(self) -> list[Migration]:
        """Registered migrations in application order."""
        return list(self._migrations)

    def register(self, name: str, statements: list[str] | tuple[str, ...]) -> None:
        """Register a migration step.

        Args:
            name: Stable identifier recorded once the step has run.
            statements: SQL statements executed in order inside one transaction.

        Raises:
            MigrationError: If the name is empty or already registered.
        """
        if not name:
            raise MigrationError("Migration name must not be empty")
        if any(m.name == name for m in self._migrations):
            raise MigrationError(f"Migration {name!r} is already registered")
        self._migrations.append(Migration(name=name, statements=tuple(statements)))

    def migrate(self, db: Database) -> list[str]:
        """Apply every registered migration that has not run yet.

        Args:
            db: Database connection to migrate.

        Returns:
            Names of the migrations applied by this call, in order.

        Raises:
            MigrationError: If a migration fails. Earlier steps stay applied;
                the failing step leaves no trace.
        """
        db.execute(MIGRATIONS_TABLE_SQL)
        db.commit()
        done = set(applied_migrations(db))

        applied: list[str] = []
        for migration in self._migrations:
            if migration.name in done:
                continue
            logger.info(f"Running migration: {migration.name}")
            try:
                with db.transaction():
                    for statement in migration.statements:
                        db.execute(statement)
                    db.execute(
                        "INSERT INTO schema_migrations (name) VALUES (?)",
                        (migration.name,),
                    )
            except Exception as e:
                logger.error(f"Migration {migration.name} failed: {e}")
                raise MigrationError(f"Migration {migration.name!r} failed: {e}") from e
            applied.append(migration.name)

        return applied


def applied_migrations(db: Database) -> list[str]:
    """Names of applied migrations, oldest first."""
    try:
        rows = db.execute(
            "SELECT name FROM schema_migrations ORDER BY applied_at, rowid"
        ).fetchall()
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return []
    return [row["name"] for row in rows]


V1_INITIAL_SCHEMA = [
    """
    CREATE TABLE conversations (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        library_id TEXT,
        model_used TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX idx_conversations_updated ON conversations(updated_at)",
    "CREATE INDEX idx_conversations_library ON conversations(library_id)",
    """
    CREATE TABLE messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
        content TEXT NOT NULL,
        is_user INTEGER NOT NULL,
        timestamp TEXT NOT NULL,
        library_id TEXT
    )
    """,
    "CREATE INDEX idx_messages_conversation ON messages(conversation_id, timestamp)",
]

V2_RAG_TABLES = [
    """
    CREATE TABLE rag_documents (
        id TEXT PRIMARY KEY,
        source_type TEXT NOT NULL,
        source_id TEXT NOT NULL,
        chunk_text TEXT NOT NULL,
        chunk_index INTEGER NOT NULL CHECK (chunk_index >= 0),
        metadata TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX idx_rag_documents_source ON rag_documents(source_type, source_id)",
    """
    CREATE TABLE rag_embeddings (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL REFERENCES rag_documents(id) ON DELETE CASCADE,
        embedding BLOB NOT NULL,
        embedding_model TEXT NOT NULL,
        dimension INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE(document_id, embedding_model)
    )
    """,
    "CREATE INDEX idx_embeddings_document ON rag_embeddings(document_id)",
    # Full-text index over chunk text; id is stored for joining, not indexed
    """
    CREATE VIRTUAL TABLE rag_documents_fts USING fts5(
        id UNINDEXED,
        chunk_text,
        tokenize='porter'
    )
    """,
]

V3_RAG_LOOKUP_INDEXES = [
    "CREATE INDEX idx_rag_documents_created ON rag_documents(created_at)",
    "CREATE INDEX idx_embeddings_model ON rag_embeddings(embedding_model)",
]


def build_migrator() -> Migrator:
    """Create the migrator for the convrag schema."""
    migrator = Migrator()
    migrator.register("v1_initial_schema", V1_INITIAL_SCHEMA)
    migrator.register("v2_rag_tables", V2_RAG_TABLES)
    migrator.register("v3_rag_lookup_indexes", V3_RAG_LOOKUP_INDEXES)
    return migrator


def run_migrations(db: Database) -> list[str]:
    """Run database migrations to set up or upgrade schema.

    Args:
        db: Database connection to run migrations on.

    Returns:
        Names of migrations applied by this call.
    """
    return build_migrator().migrate(db)
