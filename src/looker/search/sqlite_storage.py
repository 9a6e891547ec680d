"""SQLite persistence for token indexes.

One artifact per codebase root:
- metadata: format version, counts, byte order of the posting blobs
- files: file table with fingerprints and the original source bytes
- tokens: per-file token arrays clustered by (file_id, token_index)
- postings: token identity -> binary-encoded sorted (file_id, token_index) pairs
- skipped_files: files the build left out, with the reason

A build writes a fresh database next to the live one and installs it with an
atomic rename, so an interrupted build leaves the previous artifact intact.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from pathlib import Path
import sqlite3
import sys
import threading
from uuid import uuid4

from looker.search.errors import IndexCorruptError, IndexIOError, IndexMissingError
from looker.search.index import CodeIndex
from looker.search.models import (
    FileEntry,
    FileFingerprint,
    Position,
    Posting,
    SkippedFile,
    Token,
    TokenIdentity,
    TokenKind,
)


logger = logging.getLogger(__name__)

FORMAT_VERSION = "looker-tokens-v1"

_REQUIRED_METADATA = ("format_version", "file_count", "token_count", "posting_keys", "byteorder")

_TOKEN_COLUMNS = "kind, text, start_offset, start_line, start_column, end_offset, end_line, end_column"

# Readers share the mapped file; writers build a fresh file that is renamed into place.
_READ_PRAGMAS = (
    "PRAGMA busy_timeout = 30000",
    "PRAGMA cache_size = -65536",
    "PRAGMA mmap_size = 134217728",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA query_only = 1",
)
_WRITE_PRAGMAS = (
    "PRAGMA page_size = 4096",
    "PRAGMA journal_mode = DELETE",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA cache_size = -65536",
)


# Primary result codes: SQLITE_PERM, SQLITE_BUSY, SQLITE_LOCKED, SQLITE_IOERR, SQLITE_CANTOPEN.
_IO_ERROR_CODES = frozenset({3, 5, 6, 10, 14})


def _apply_pragmas(conn: sqlite3.Connection, pragmas: Sequence[str]) -> None:
    for pragma in pragmas:
        conn.execute(pragma)


class SQLiteConnectionPool:
    """Thread-local read-only connections to one database file."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get this thread's connection, creating it on first use."""
        connection = getattr(self._local, "connection", None)
        if connection is None:
            try:
                connection = self._create_connection()
            except sqlite3.OperationalError as exc:
                # Locked, unreadable or vanished file; a non-database file fails later as corrupt.
                raise IndexIOError(self.db_path, f"cannot open index: {exc}") from exc
            self._local.connection = connection
            with self._lock:
                self._connections.append(connection)
        yield connection

    def _create_connection(self) -> sqlite3.Connection:
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, check_same_thread=False, cached_statements=0)
        try:
            _apply_pragmas(conn, _READ_PRAGMAS)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def close_all(self) -> None:
        """Close every connection opened through the pool."""
        with self._lock:
            connections, self._connections = self._connections, []
        for connection in connections:
            try:
                connection.close()
            except sqlite3.Error as exc:
                logger.warning("Failed to close index connection for %s: %s", self.db_path, exc)
        self._local = threading.local()


class SqliteCodeIndex:
    """Read-only index backed by a persisted artifact.

    The file table is loaded eagerly; tokens, postings and sources are fetched
    on demand so opening an index costs time proportional to the file count.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._pool = SQLiteConnectionPool(db_path)
        try:
            self.metadata = self._load_metadata()
            self._swap_bytes = self.metadata["byteorder"] != sys.byteorder
            self._entries = self._load_entries()
            self._validate_header()
        except Exception:
            self._pool.close_all()
            raise

    def __enter__(self) -> SqliteCodeIndex:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SqliteCodeIndex({str(self.db_path)!r}, files={len(self._entries)})"

    @property
    def file_count(self) -> int:
        return len(self._entries)

    @property
    def token_count(self) -> int:
        return int(self.metadata["token_count"])

    @property
    def created_at(self) -> str | None:
        return self.metadata.get("created_at")

    def files(self) -> Sequence[FileEntry]:
        return self._entries

    def file_entry(self, file_id: int) -> FileEntry:
        return self._entries[file_id]

    def postings(self, identity: TokenIdentity) -> Sequence[Posting]:
        kind, text = identity
        row = self._fetchone("SELECT positions_blob FROM postings WHERE kind = ? AND text = ?", (kind.value, text))
        if row is None:
            return ()
        pairs = array("I")
        pairs.frombytes(row[0])
        if self._swap_bytes:
            pairs.byteswap()
        if len(pairs) % 2:
            raise IndexCorruptError(self.db_path, f"odd posting blob length for {text!r}")
        return tuple(Posting(pairs[i], pairs[i + 1]) for i in range(0, len(pairs), 2))

    def identities(self) -> Iterator[TokenIdentity]:
        rows = self._fetchall("SELECT kind, text FROM postings ORDER BY kind, text", ())
        for kind, text in rows:
            yield (self._kind(kind), text)

    def token_window(self, file_id: int, start: int, stop: int) -> Sequence[Token]:
        rows = self._fetchall(
            f"SELECT {_TOKEN_COLUMNS} FROM tokens "
            "WHERE file_id = ? AND token_index >= ? AND token_index < ? ORDER BY token_index",
            (file_id, max(start, 0), stop),
        )
        return [self._row_to_token(row) for row in rows]

    def skipped_files(self) -> tuple[SkippedFile, ...]:
        rows = self._fetchall("SELECT path, reason, message, byte_offset FROM skipped_files ORDER BY path", ())
        return tuple(
            SkippedFile(path=path, reason=reason, message=message, offset=offset)
            for path, reason, message, offset in rows
        )

    def source(self, file_id: int) -> bytes:
        row = self._fetchone("SELECT source FROM files WHERE file_id = ?", (file_id,))
        if row is None:
            raise IndexCorruptError(self.db_path, f"missing source for file id {file_id}")
        return bytes(row[0])

    def close(self) -> None:
        self._pool.close_all()

    # --- internal helpers -------------------------------------------------

    def _fetchone(self, query: str, params: tuple) -> tuple | None:
        try:
            with self._pool.get_connection() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.DatabaseError as exc:
            raise self._read_error(exc) from exc

    def _fetchall(self, query: str, params: tuple) -> list[tuple]:
        try:
            with self._pool.get_connection() as conn:
                return conn.execute(query, params).fetchall()
        except sqlite3.DatabaseError as exc:
            raise self._read_error(exc) from exc

    def _read_error(self, exc: sqlite3.DatabaseError) -> IndexCorruptError | IndexIOError:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(exc, sqlite3.OperationalError) and code is not None and code & 0xFF in _IO_ERROR_CODES:
            return IndexIOError(self.db_path, f"read failed: {exc}")
        return IndexCorruptError(self.db_path, str(exc))

    def _load_metadata(self) -> dict[str, str]:
        try:
            rows = self._fetchall("SELECT key, value FROM metadata", ())
        except IndexCorruptError as exc:
            raise IndexCorruptError(self.db_path, f"unreadable header: {exc.detail}") from exc
        metadata = {key: value for key, value in rows}
        missing = [key for key in _REQUIRED_METADATA if key not in metadata]
        if missing:
            raise IndexCorruptError(self.db_path, f"header missing {', '.join(missing)}")
        if metadata["format_version"] != FORMAT_VERSION:
            raise IndexCorruptError(
                self.db_path, f"format {metadata['format_version']!r}, expected {FORMAT_VERSION!r}"
            )
        return metadata

    def _load_entries(self) -> tuple[FileEntry, ...]:
        rows = self._fetchall(
            "SELECT file_id, path, size, sha256, mtime_ns, token_count FROM files ORDER BY file_id", ()
        )
        entries = []
        for expected_id, (file_id, path, size, sha256, mtime_ns, token_count) in enumerate(rows):
            if file_id != expected_id:
                raise IndexCorruptError(self.db_path, f"file ids are not dense at {expected_id}")
            entries.append(
                FileEntry(
                    file_id=file_id,
                    path=path,
                    fingerprint=FileFingerprint(size=size, sha256=sha256, mtime_ns=mtime_ns),
                    token_count=token_count,
                )
            )
        return tuple(entries)

    def _validate_header(self) -> None:
        try:
            file_count = int(self.metadata["file_count"])
            token_count = int(self.metadata["token_count"])
            posting_keys = int(self.metadata["posting_keys"])
        except ValueError as exc:
            raise IndexCorruptError(self.db_path, f"non-numeric header count: {exc}") from exc
        if file_count != len(self._entries):
            raise IndexCorruptError(self.db_path, f"header lists {file_count} files, table has {len(self._entries)}")
        stored_tokens = sum(entry.token_count for entry in self._entries)
        if token_count != stored_tokens:
            raise IndexCorruptError(self.db_path, f"header lists {token_count} tokens, files hold {stored_tokens}")
        row = self._fetchone("SELECT COUNT(*) FROM postings", ())
        if row is None or row[0] != posting_keys:
            raise IndexCorruptError(self.db_path, f"header lists {posting_keys} posting lists")

    def _kind(self, value: str) -> TokenKind:
        try:
            return TokenKind(value)
        except ValueError as exc:
            raise IndexCorruptError(self.db_path, f"unknown token kind {value!r}") from exc

    def _row_to_token(self, row: tuple) -> Token:
        kind, text, start_offset, start_line, start_column, end_offset, end_line, end_column = row
        return Token(
            kind=self._kind(kind),
            text=text,
            start=Position(start_offset, start_line, start_column),
            end=Position(end_offset, end_line, end_column),
        )


class SqliteIndexStore:
    """Persist and open the index artifact for one codebase root."""

    DB_FILENAME = "index.db"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    @property
    def path(self) -> Path:
        return self.directory / self.DB_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def open(self) -> SqliteCodeIndex:
        """Open the persisted index.

        Raises:
            IndexMissingError: nothing has been built for this directory.
            IndexCorruptError: the artifact fails structural validation.
        """
        if not self.exists():
            raise IndexMissingError(self.path)
        return SqliteCodeIndex(self.path)

    def save(
        self,
        index: CodeIndex,
        *,
        root: str | Path | None = None,
        skipped: Sequence[SkippedFile] = (),
    ) -> Path:
        """Write ``index`` and atomically replace any existing artifact."""
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IndexIOError(self.directory, f"cannot create index directory: {exc}") from exc

        tmp_path = self.directory / f".{self.DB_FILENAME}.{uuid4().hex}.tmp"
        installed = False
        try:
            self._write_database(tmp_path, index, root, skipped)
            try:
                tmp_path.replace(self.path)
            except OSError as exc:
                raise IndexIOError(self.path, f"cannot install index: {exc}") from exc
            installed = True
        finally:
            if not installed:
                self._discard(tmp_path)

        logger.info("Saved index with %d files to %s", index.file_count, self.path)
        return self.path

    def _write_database(
        self, db_path: Path, index: CodeIndex, root: str | Path | None, skipped: Sequence[SkippedFile]
    ) -> None:
        conn = None
        try:
            conn = sqlite3.connect(db_path, cached_statements=0)
            _apply_pragmas(conn, _WRITE_PRAGMAS)
            self._create_schema(conn)
            self._store_files(conn, index)
            self._store_tokens(conn, index)
            posting_keys = self._store_postings(conn, index)
            self._store_skipped(conn, skipped)
            self._store_metadata(conn, index, posting_keys, root)
            conn.commit()
        except sqlite3.Error as exc:
            raise IndexIOError(db_path, f"failed to write index: {exc}") from exc
        finally:
            if conn is not None:
                try:
                    conn.close()
                except sqlite3.Error as close_error:
                    logger.warning("Failed to close SQLite connection for %s: %s", db_path, close_error)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE metadata (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE files (
                file_id INTEGER PRIMARY KEY,
                path TEXT NOT NULL UNIQUE,
                size INTEGER NOT NULL,
                sha256 TEXT NOT NULL,
                mtime_ns INTEGER,
                token_count INTEGER NOT NULL,
                source BLOB NOT NULL
            );

            CREATE TABLE tokens (
                file_id INTEGER NOT NULL,
                token_index INTEGER NOT NULL,
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                start_offset INTEGER NOT NULL,
                start_line INTEGER NOT NULL,
                start_column INTEGER NOT NULL,
                end_offset INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                end_column INTEGER NOT NULL,
                PRIMARY KEY (file_id, token_index)
            ) WITHOUT ROWID;

            CREATE TABLE postings (
                kind TEXT NOT NULL,
                text TEXT NOT NULL,
                positions_blob BLOB NOT NULL,
                PRIMARY KEY (kind, text)
            ) WITHOUT ROWID;

            CREATE TABLE skipped_files (
                path TEXT PRIMARY KEY,
                reason TEXT NOT NULL,
                message TEXT NOT NULL,
                byte_offset INTEGER
            );
        """)

    def _store_files(self, conn: sqlite3.Connection, index: CodeIndex) -> None:
        conn.executemany(
            "INSERT INTO files (file_id, path, size, sha256, mtime_ns, token_count, source) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                (
                    indexed.file_id,
                    indexed.path,
                    indexed.fingerprint.size,
                    indexed.fingerprint.sha256,
                    indexed.fingerprint.mtime_ns,
                    indexed.token_count,
                    indexed.source,
                )
                for indexed in index.indexed_files()
            ),
        )

    def _store_tokens(self, conn: sqlite3.Connection, index: CodeIndex) -> None:
        conn.executemany(
            f"INSERT INTO tokens (file_id, token_index, {_TOKEN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                (
                    indexed.file_id,
                    token_index,
                    token.kind.value,
                    token.text,
                    token.start.offset,
                    token.start.line,
                    token.start.column,
                    token.end.offset,
                    token.end.line,
                    token.end.column,
                )
                for indexed in index.indexed_files()
                for token_index, token in enumerate(indexed.tokens)
            ),
        )

    def _store_postings(self, conn: sqlite3.Connection, index: CodeIndex) -> int:
        rows = []
        for (kind, text), posting_list in index.posting_map.items():
            pairs = array("I")
            for posting in posting_list:
                pairs.append(posting.file_id)
                pairs.append(posting.token_index)
            rows.append((kind.value, text, pairs.tobytes()))
        conn.executemany("INSERT INTO postings (kind, text, positions_blob) VALUES (?, ?, ?)", rows)
        return len(rows)

    def _store_skipped(self, conn: sqlite3.Connection, skipped: Sequence[SkippedFile]) -> None:
        conn.executemany(
            "INSERT OR REPLACE INTO skipped_files (path, reason, message, byte_offset) VALUES (?, ?, ?, ?)",
            ((item.path, item.reason, item.message, item.offset) for item in skipped),
        )

    def _store_metadata(
        self, conn: sqlite3.Connection, index: CodeIndex, posting_keys: int, root: str | Path | None
    ) -> None:
        metadata = [
            ("format_version", FORMAT_VERSION),
            ("file_count", str(index.file_count)),
            ("token_count", str(index.token_count)),
            ("posting_keys", str(posting_keys)),
            ("byteorder", sys.byteorder),
            ("created_at", datetime.now(timezone.utc).isoformat()),
            ("root", str(root) if root is not None else ""),
        ]
        conn.executemany("INSERT INTO metadata (key, value) VALUES (?, ?)", metadata)

    def _discard(self, tmp_path: Path) -> None:
        for candidate in (tmp_path, tmp_path.with_name(tmp_path.name + "-journal")):
            try:
                candidate.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove partial index file %s: %s", candidate, exc)
