import sqlite3
import threading
from typing import Dict, Iterable, Iterator, Optional, Tuple


class WriteBatch:
    """Buffered writes against a StorageDB, applied in one transaction."""

    def __init__(self, db: "StorageDB"):
        self.db = db
        self._pending: Dict[bytes, bytes] = {}
        self.size_bytes = 0

    def put(self, key: bytes, value: bytes):
        key, value = bytes(key), bytes(value)
        previous = self._pending.get(key)
        if previous is not None:
            self.size_bytes -= len(previous)
        self._pending[key] = value
        self.size_bytes += len(value)

    def write(self):
        """Makes the buffered writes durable. The buffer is kept until reset()."""
        self.db.write_batch(self._pending.items())

    def reset(self):
        self._pending.clear()
        self.size_bytes = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: bytes) -> bool:
        return bytes(key) in self._pending


class StorageDB:
    def __init__(self, db_path: str, read_only: bool = False):
        self.db_path = db_path
        self.read_only = read_only
        if read_only:
            self.conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True, check_same_thread=False)
        else:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        if not read_only:
            self._init_db()

    def _init_db(self):
        with self._lock:
            # Key-Value store: trie nodes by hash, code by code hash, chain data by prefix
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key BLOB PRIMARY KEY,
                    value BLOB NOT NULL
                )
            ''')
            self.conn.commit()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            self.cursor.execute('SELECT value FROM kv WHERE key = ?', (bytes(key),))
            row = self.cursor.fetchone()
            return bytes(row[0]) if row else None

    def has(self, key: bytes) -> bool:
        with self._lock:
            self.cursor.execute('SELECT 1 FROM kv WHERE key = ?', (bytes(key),))
            return self.cursor.fetchone() is not None

    def put(self, key: bytes, value: bytes):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)', (bytes(key), bytes(value)))
            self.conn.commit()

    def delete(self, key: bytes):
        with self._lock:
            self.cursor.execute('DELETE FROM kv WHERE key = ?', (bytes(key),))
            self.conn.commit()

    def new_batch(self) -> WriteBatch:
        return WriteBatch(self)

    def write_batch(self, items: Iterable[Tuple[bytes, bytes]]):
        """Writes all items in a single transaction; nothing is written if it fails."""
        rows = [(bytes(k), bytes(v)) for k, v in items]
        if not rows:
            return
        with self._lock:
            try:
                self.cursor.executemany('INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)', rows)
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    def iter_prefix(self, prefix: bytes) -> Iterator[Tuple[bytes, bytes]]:
        with self._lock:
            self.cursor.execute(
                'SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key',
                (len(prefix), bytes(prefix)),
            )
            rows = self.cursor.fetchall()
        for key, value in rows:
            yield bytes(key), bytes(value)

    def count(self) -> int:
        with self._lock:
            self.cursor.execute('SELECT COUNT(*) FROM kv')
            return self.cursor.fetchone()[0]

    def compact(self):
        """Post-migration maintenance: reclaims free pages."""
        with self._lock:
            self.conn.commit()
            self.conn.execute('VACUUM')

    def close(self):
        with self._lock:
            self.conn.close()

    def __enter__(self) -> "StorageDB":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
