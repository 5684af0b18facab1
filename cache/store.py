"""
cache/store.py -- SQLite-backed page cache with path and tag invalidation.

Public content pages are rendered once and served from here until their TTL
runs out (default one hour) or the CMS webhook invalidates them. Each entry
is keyed by request path and carries the set of tags it was built from, so a
publish event can purge "every page that shows post X" without knowing paths.

Usage:
    cache = PageCache()
    html = cache.get("/blog")                       # str or None
    cache.set("/blog", html, ["posts", "posts:page:1"])
    cache.invalidate_path("/blog")                  # one page
    cache.invalidate_path("/", layout=True)         # "/" and everything under it
    cache.invalidate_tag("post:hello-world")        # every page tagged with it
    cache.purge_expired()                           # call periodically

Every invalidation is idempotent: purging something that is not cached
removes nothing and returns 0.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger("soloshe.cache")

_DEFAULT_DB = Path(__file__).parent / "soloshe_pages.db"
_DEFAULT_TTL = 60 * 60  # 1 hour in seconds

_DDL = """
CREATE TABLE IF NOT EXISTS page_cache (
    path        TEXT PRIMARY KEY,
    html        TEXT NOT NULL,
    cached_at   REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS page_tags (
    path        TEXT NOT NULL,
    tag         TEXT NOT NULL,
    PRIMARY KEY (path, tag)
);
CREATE INDEX IF NOT EXISTS idx_page_tags_tag ON page_tags (tag);
"""


class PageCache:
    def __init__(self, db_path: Union[Path, str] = _DEFAULT_DB, ttl: int = _DEFAULT_TTL) -> None:
        self.ttl = ttl
        # Route handlers run in a thread pool; one connection guarded by a lock.
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_DDL)
        self._conn.commit()

    def get(self, path: str) -> Optional[str]:
        """Return cached HTML for path if it exists and hasn't expired."""
        with self._lock:
            row = self._conn.execute(
                "SELECT html, cached_at FROM page_cache WHERE path = ?",
                (path,),
            ).fetchone()
            if row is None:
                return None
            html, cached_at = row
            if time.time() - cached_at > self.ttl:
                self._delete_paths([path])
                self._conn.commit()
                return None
            return html

    def set(self, path: str, html: str, tags: Iterable[str] = ()) -> None:
        """Store html for path, replacing any existing entry and its tags."""
        with self._lock:
            self._conn.execute("DELETE FROM page_tags WHERE path = ?", (path,))
            self._conn.execute(
                "INSERT OR REPLACE INTO page_cache (path, html, cached_at) VALUES (?, ?, ?)",
                (path, html, time.time()),
            )
            self._conn.executemany(
                "INSERT OR IGNORE INTO page_tags (path, tag) VALUES (?, ?)",
                [(path, tag) for tag in set(tags)],
            )
            self._conn.commit()

    def invalidate_path(self, path: str, layout: bool = False) -> int:
        """Drop the cached page for path. Returns number of pages removed.

        Query-string variants of path ("/blog?page=2" for "/blog") go with it.
        layout=True also drops every page nested beneath path, the way a
        shared layout change invalidates all pages that render inside it.
        """
        query_prefix = path + "?"
        with self._lock:
            rows = self._conn.execute("SELECT path FROM page_cache").fetchall()
            if layout:
                prefix = path.rstrip("/") + "/"
                targets = [p for (p,) in rows if p == path or p.startswith((prefix, query_prefix))]
            else:
                targets = [p for (p,) in rows if p == path or p.startswith(query_prefix)]
            removed = self._delete_paths(targets)
            self._conn.commit()
        if removed:
            logger.info("Invalidated %d cached page(s) for path %s (layout=%s)", removed, path, layout)
        return removed

    def invalidate_tag(self, tag: str) -> int:
        """Drop every cached page carrying tag. Returns number of pages removed."""
        with self._lock:
            rows = self._conn.execute("SELECT path FROM page_tags WHERE tag = ?", (tag,)).fetchall()
            removed = self._delete_paths([p for (p,) in rows])
            self._conn.commit()
        if removed:
            logger.info("Invalidated %d cached page(s) for tag %s", removed, tag)
        return removed

    def purge_expired(self) -> int:
        """Delete all entries older than TTL. Returns number of rows removed."""
        cutoff = time.time() - self.ttl
        with self._lock:
            rows = self._conn.execute("SELECT path FROM page_cache WHERE cached_at < ?", (cutoff,)).fetchall()
            removed = self._delete_paths([p for (p,) in rows])
            self._conn.commit()
        return removed

    def _delete_paths(self, paths: list[str]) -> int:
        removed = 0
        for path in paths:
            cursor = self._conn.execute("DELETE FROM page_cache WHERE path = ?", (path,))
            self._conn.execute("DELETE FROM page_tags WHERE path = ?", (path,))
            removed += cursor.rowcount
        return removed

    def close(self) -> None:
        self._conn.close()
