"""
Database Infrastructure for NearHelp

Provides SQLite database management, connection pooling, migrations,
and transaction management for the NearHelp repositories.
"""

import sqlite3
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Tuple
from dataclasses import dataclass


@dataclass
class Migration:
    """Database migration definition"""
    version: int
    name: str
    sql: str


class DatabaseError(Exception):
    """Database-related errors"""
    pass


class ConnectionPool:
    """Simple SQLite connection pool"""

    def __init__(self, database_path: str, max_connections: int = 10):
        self.database_path = database_path
        self.max_connections = max_connections
        self.connections: List[sqlite3.Connection] = []
        self.in_use = set()
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection from the pool"""
        with self.lock:
            for conn in self.connections:
                if conn not in self.in_use:
                    self.in_use.add(conn)
                    return conn

            if len(self.connections) < self.max_connections:
                conn = sqlite3.connect(
                    self.database_path,
                    check_same_thread=False,
                    timeout=30.0
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                self.connections.append(conn)
                self.in_use.add(conn)
                return conn

            raise DatabaseError("Connection pool exhausted")

    def return_connection(self, conn: sqlite3.Connection):
        """Return a connection to the pool"""
        with self.lock:
            self.in_use.discard(conn)

    def close_all(self):
        """Close all connections in the pool"""
        with self.lock:
            for conn in self.connections:
                try:
                    conn.close()
                except sqlite3.Error as e:
                    self.logger.warning(f"Error closing connection: {e}")
            self.connections.clear()
            self.in_use.clear()


class DatabaseManager:
    """
    Manages SQLite database operations, migrations, and connection pooling
    """

    def __init__(self, database_path: str, max_connections: int = 10):
        self.database_path = Path(database_path)
        self.pool = ConnectionPool(str(self.database_path), max_connections)
        self.logger = logging.getLogger(__name__)
        self.migrations = self._get_migrations()

        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self._initialize_database()

    @contextmanager
    def get_connection(self):
        """Context manager for database connections"""
        conn = None
        try:
            conn = self.pool.get_connection()
            yield conn
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                self.pool.return_connection(conn)

    @contextmanager
    def transaction(self):
        """Context manager for database transactions"""
        with self.get_connection() as conn:
            try:
                conn.execute("BEGIN")
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _initialize_database(self):
        """Initialize database with schema and migrations"""
        self.logger.info(f"Initializing database at {self.database_path}")

        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

        self._run_migrations()

    def _get_migrations(self) -> List[Migration]:
        """Get all database migrations"""
        return [
            Migration(
                version=1,
                name="initial_schema",
                sql="""
                -- Registered users and their reputation
                CREATE TABLE users (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE, -- stored lowercased
                    password_hash TEXT NOT NULL,
                    skills TEXT, -- JSON array
                    trust_score REAL NOT NULL DEFAULT 3.5,
                    verified BOOLEAN NOT NULL DEFAULT FALSE,
                    suspended BOOLEAN NOT NULL DEFAULT FALSE,
                    role TEXT NOT NULL DEFAULT 'normal',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (trust_score >= 0 AND trust_score <= 5)
                );

                -- SOS incidents
                CREATE TABLE incidents (
                    id TEXT PRIMARY KEY,
                    crisis_type TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    lat REAL NOT NULL,
                    lng REAL NOT NULL,
                    address TEXT NOT NULL DEFAULT '',
                    radius_meters INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    anonymous BOOLEAN NOT NULL DEFAULT FALSE,
                    responders TEXT NOT NULL DEFAULT '[]', -- JSON array of user ids
                    responder_locations TEXT NOT NULL DEFAULT '[]', -- JSON array
                    resolved_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1,
                    FOREIGN KEY (created_by) REFERENCES users (id)
                );

                -- Append-only responder audit trail
                CREATE TABLE response_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    incident_id TEXT NOT NULL,
                    responder_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    note TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (incident_id) REFERENCES incidents (id),
                    FOREIGN KEY (responder_id) REFERENCES users (id)
                );

                -- Abuse flags raised against incidents
                CREATE TABLE reports (
                    id TEXT PRIMARY KEY,
                    incident_id TEXT NOT NULL,
                    reported_by TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    resolved BOOLEAN NOT NULL DEFAULT FALSE,
                    resolution_note TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (incident_id) REFERENCES incidents (id),
                    FOREIGN KEY (reported_by) REFERENCES users (id)
                );
                """
            ),
            Migration(
                version=2,
                name="add_query_indexes",
                sql="""
                CREATE INDEX idx_incidents_status_created ON incidents (status, created_at);
                CREATE INDEX idx_incidents_created_by ON incidents (created_by, created_at);
                CREATE INDEX idx_incidents_resolved_at ON incidents (resolved_at);
                CREATE INDEX idx_response_logs_incident ON response_logs (incident_id);
                CREATE INDEX idx_reports_incident ON reports (incident_id);
                CREATE INDEX idx_reports_resolved ON reports (resolved);
                CREATE INDEX idx_users_suspended ON users (suspended);
                """
            ),
        ]

    def _run_migrations(self):
        """Run pending database migrations"""
        with self.get_connection() as conn:
            cursor = conn.execute("SELECT MAX(version) FROM migrations")
            result = cursor.fetchone()
            current_version = result[0] if result[0] is not None else 0

            for migration in self.migrations:
                if migration.version <= current_version:
                    continue

                self.logger.info(f"Running migration {migration.version}: {migration.name}")
                try:
                    conn.executescript(migration.sql)
                    conn.execute(
                        "INSERT INTO migrations (version, name) VALUES (?, ?)",
                        (migration.version, migration.name)
                    )
                    conn.commit()
                    self.logger.info(f"Migration {migration.version} completed successfully")
                except sqlite3.Error as e:
                    conn.rollback()
                    self.logger.error(f"Migration {migration.version} failed: {e}")
                    raise DatabaseError(f"Migration failed: {e}")

    def execute_query(self, query: str, params: Tuple = ()) -> List[sqlite3.Row]:
        """Execute a SELECT query and return results"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)
                return cursor.fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}")

    def execute_update(self, query: str, params: Tuple = ()) -> int:
        """Execute an INSERT/UPDATE/DELETE query and return affected rows"""
        try:
            with self.transaction() as conn:
                cursor = conn.execute(query, params)
                return cursor.rowcount
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise DatabaseError(f"Update failed: {e}")

    def count(self, query: str, params: Tuple = ()) -> int:
        """Run a COUNT(*) query and return the scalar"""
        rows = self.execute_query(query, params)
        return int(rows[0][0]) if rows else 0

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics"""
        stats: Dict[str, Any] = {}

        for table in ['users', 'incidents', 'response_logs', 'reports']:
            stats[table] = self.count(f"SELECT COUNT(*) FROM {table}")

        if self.database_path.exists():
            stats['database_size_bytes'] = self.database_path.stat().st_size
        else:
            stats['database_size_bytes'] = 0

        return stats

    def close(self):
        """Close all database connections"""
        self.pool.close_all()
