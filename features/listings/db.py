"""
Postgres backing store for listings and their images.

Tables:
  listings        — one row per listing; agent output, pipeline state, agent log
  listing_images  — originals and their enhanced variants (parent_image_id)

Only the columns the generation/enhancement jobs touch are modelled here;
the surrounding application owns the rest of the schema.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

import psycopg2
import psycopg2.extras

import config

log = logging.getLogger(__name__)

# ── Connection ────────────────────────────────────────────────────────

_pool: list[Any] = []


def _get_conn():
    """Get a Postgres connection (simple single-connection reuse)."""
    if _pool:
        conn = _pool[0]
        if not conn.closed:
            return conn
        _pool.clear()

    conn = psycopg2.connect(config.DATABASE_URL)
    conn.autocommit = True
    _pool.append(conn)
    return conn


@contextmanager
def get_cursor():
    conn = _get_conn()
    cur = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    try:
        yield cur
    finally:
        cur.close()


# ── Schema ────────────────────────────────────────────────────────────

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS listings (
    id                    TEXT PRIMARY KEY,
    user_id               TEXT NOT NULL,
    raw_description       TEXT,
    title                 TEXT,
    description           TEXT,
    suggested_price       DOUBLE PRECISION,
    price_range_low       DOUBLE PRECISION,
    price_range_high      DOUBLE PRECISION,
    category              TEXT,
    condition             TEXT,
    brand                 TEXT,
    model                 TEXT,
    research_notes        TEXT,
    comparables           JSONB,
    status                TEXT NOT NULL DEFAULT 'DRAFT',
    pipeline_step         TEXT NOT NULL DEFAULT 'PENDING',
    pipeline_error        TEXT,
    agent_log             JSONB DEFAULT '[]'::jsonb,
    agent_transcript_url  TEXT,
    created_at            TIMESTAMPTZ DEFAULT now(),
    updated_at            TIMESTAMPTZ DEFAULT now()
);

CREATE TABLE IF NOT EXISTS listing_images (
    id                  TEXT PRIMARY KEY,
    listing_id          TEXT NOT NULL REFERENCES listings(id) ON DELETE CASCADE,
    type                TEXT NOT NULL DEFAULT 'ORIGINAL',
    blob_url            TEXT NOT NULL,
    blob_key            TEXT NOT NULL,
    parent_image_id     TEXT REFERENCES listing_images(id) ON DELETE CASCADE,
    sort_order          INTEGER NOT NULL DEFAULT 0,
    is_primary          BOOLEAN NOT NULL DEFAULT false,
    enhancement_prompt  TEXT,
    created_at          TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_listings_user_id ON listings(user_id);
CREATE INDEX IF NOT EXISTS idx_listing_images_listing_id ON listing_images(listing_id);
CREATE INDEX IF NOT EXISTS idx_listing_images_parent ON listing_images(parent_image_id);
"""

LISTING_COLUMNS = {
    "title", "description", "suggested_price", "price_range_low", "price_range_high",
    "category", "condition", "brand", "model", "research_notes", "comparables",
    "status", "pipeline_step", "pipeline_error", "agent_log", "agent_transcript_url",
}
JSON_COLUMNS = {"comparables", "agent_log"}


def init_db():
    """Create tables if they don't exist."""
    try:
        with get_cursor() as cur:
            cur.execute(SCHEMA_SQL)
        log.info("Database schema initialized")
    except Exception as e:
        log.error("Failed to initialize database: %s", e)
        raise


# ── Listings ──────────────────────────────────────────────────────────

def get_listing(listing_id: str) -> dict | None:
    with get_cursor() as cur:
        cur.execute("SELECT * FROM listings WHERE id = %s", (listing_id,))
        return cur.fetchone()


def update_listing(listing_id: str, **fields: Any) -> None:
    """Set the given columns on one listing. Enum values are stored by value."""
    unknown = set(fields) - LISTING_COLUMNS
    if unknown:
        raise ValueError(f"Unknown listing columns: {sorted(unknown)}")
    if not fields:
        return

    assignments = []
    values = []
    for column, value in fields.items():
        if hasattr(value, "value"):
            value = value.value
        if column in JSON_COLUMNS and value is not None:
            value = psycopg2.extras.Json(value)
        assignments.append(f"{column} = %s")
        values.append(value)

    sql = f"UPDATE listings SET {', '.join(assignments)}, updated_at = now() WHERE id = %s"
    with get_cursor() as cur:
        cur.execute(sql, (*values, listing_id))


def get_progress(listing_id: str) -> dict | None:
    with get_cursor() as cur:
        cur.execute(
            """SELECT id, status, pipeline_step, pipeline_error, agent_log,
                      agent_transcript_url, updated_at
               FROM listings WHERE id = %s""",
            (listing_id,),
        )
        return cur.fetchone()


# ── Images ────────────────────────────────────────────────────────────

def get_image(image_id: str) -> dict | None:
    with get_cursor() as cur:
        cur.execute("SELECT * FROM listing_images WHERE id = %s", (image_id,))
        return cur.fetchone()


def insert_image(image: dict) -> bool:
    """Insert an image row. Returns False if a row with this id already exists."""
    with get_cursor() as cur:
        cur.execute(
            """
            INSERT INTO listing_images (
                id, listing_id, type, blob_url, blob_key, parent_image_id,
                sort_order, is_primary, enhancement_prompt
            ) VALUES (
                %(id)s, %(listing_id)s, %(type)s, %(blob_url)s, %(blob_key)s,
                %(parent_image_id)s, %(sort_order)s, %(is_primary)s, %(enhancement_prompt)s
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": image["id"],
                "listing_id": image["listing_id"],
                "type": image.get("type", "ORIGINAL"),
                "blob_url": image["blob_url"],
                "blob_key": image["blob_key"],
                "parent_image_id": image.get("parent_image_id"),
                "sort_order": image.get("sort_order", 0),
                "is_primary": image.get("is_primary", False),
                "enhancement_prompt": image.get("enhancement_prompt"),
            },
        )
        return cur.rowcount == 1


def count_variants(parent_image_id: str) -> int:
    with get_cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) AS n FROM listing_images WHERE parent_image_id = %s",
            (parent_image_id,),
        )
        row = cur.fetchone()
        return int(row["n"]) if row else 0
