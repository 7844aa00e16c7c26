"""
Database schema for feedpulse.

All tables are created with ``IF NOT EXISTS`` so ``create_tables`` is safe
to run on every deploy. Ids are server-generated UUIDs; the Python side
treats them as opaque strings.
"""

import logging

from feedpulse.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email       TEXT UNIQUE,
    settings    JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_CREATE_SOURCES_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    type            TEXT NOT NULL,
    identifier      TEXT NOT NULL,
    config          JSONB NOT NULL DEFAULT '{}'::jsonb,
    last_polled_at  TIMESTAMPTZ,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_sources_last_polled ON sources (last_polled_at);
"""

_CREATE_CONTENT_SQL = """
CREATE TABLE IF NOT EXISTS content (
    id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    source_id    UUID NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    external_id  TEXT NOT NULL,
    raw_content  TEXT NOT NULL,
    posted_at    TIMESTAMPTZ,
    metadata     JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (source_id, external_id)
);
CREATE INDEX IF NOT EXISTS idx_content_source_created ON content (source_id, created_at);
"""

_CREATE_STREAMS_SQL = """
CREATE TABLE IF NOT EXISTS streams (
    id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    source_id            UUID NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    user_id              UUID REFERENCES users(id) ON DELETE SET NULL,
    name                 TEXT NOT NULL,
    status               TEXT NOT NULL DEFAULT 'active'
                         CHECK (status IN ('active', 'paused')),
    prompt_template      JSONB NOT NULL DEFAULT '{}'::jsonb,
    notification_config  JSONB NOT NULL DEFAULT '{}'::jsonb,
    llm_config           JSONB NOT NULL DEFAULT '{}'::jsonb,
    aggregation_config   JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_streams_source_status ON streams (source_id, status);
"""

_CREATE_LOGS_SQL = """
CREATE TABLE IF NOT EXISTS logs (
    id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    stream_id   UUID NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
    type        TEXT NOT NULL CHECK (type IN ('info', 'success', 'error', 'warning')),
    message     TEXT NOT NULL,
    metadata    JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_logs_stream_created ON logs (stream_id, created_at DESC);
"""

_CREATE_BACKTESTS_SQL = """
CREATE TABLE IF NOT EXISTS backtests (
    id               UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    stream_id        UUID NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
    name             TEXT,
    description      TEXT,
    range_start      TIMESTAMPTZ NOT NULL,
    range_end        TIMESTAMPTZ NOT NULL,
    config           JSONB NOT NULL DEFAULT '{}'::jsonb,
    status           TEXT NOT NULL DEFAULT 'PENDING'
                     CHECK (status IN ('PENDING', 'RUNNING', 'COMPLETED', 'FAILED')),
    total_items      INTEGER NOT NULL DEFAULT 0,
    processed_items  INTEGER NOT NULL DEFAULT 0,
    error_message    TEXT,
    started_at       TIMESTAMPTZ,
    completed_at     TIMESTAMPTZ,
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (range_start < range_end)
);
"""

_CREATE_BACKTEST_RESULTS_SQL = """
CREATE TABLE IF NOT EXISTS backtest_results (
    id                 UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    backtest_id        UUID NOT NULL REFERENCES backtests(id) ON DELETE CASCADE,
    content_id         UUID NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    status             TEXT NOT NULL CHECK (status IN ('SUCCESS', 'FAILURE')),
    output             JSONB,
    error_message      TEXT,
    execution_time_ms  INTEGER NOT NULL DEFAULT 0,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp()
);
CREATE INDEX IF NOT EXISTS idx_backtest_results_run ON backtest_results (backtest_id, created_at);
"""

_CREATE_LLM_OUTPUTS_SQL = """
CREATE TABLE IF NOT EXISTS llm_outputs (
    id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    content_id   UUID NOT NULL REFERENCES content(id) ON DELETE CASCADE,
    stream_id    UUID NOT NULL REFERENCES streams(id) ON DELETE CASCADE,
    model        TEXT NOT NULL,
    prompt_text  TEXT NOT NULL,
    raw_output   TEXT NOT NULL,
    backtest_id  UUID REFERENCES backtests(id) ON DELETE CASCADE,
    created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_llm_outputs_stream ON llm_outputs (stream_id, backtest_id);
"""

# Order matters: foreign keys reference earlier tables
SCHEMA_STATEMENTS: tuple[str, ...] = (
    _CREATE_USERS_SQL,
    _CREATE_SOURCES_SQL,
    _CREATE_CONTENT_SQL,
    _CREATE_STREAMS_SQL,
    _CREATE_LOGS_SQL,
    _CREATE_BACKTESTS_SQL,
    _CREATE_BACKTEST_RESULTS_SQL,
    _CREATE_LLM_OUTPUTS_SQL,
)


async def create_tables(database: Database) -> None:
    """Create all feedpulse tables and indexes if they don't exist."""
    async with database.transaction() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("Database schema ensured (%d statements)", len(SCHEMA_STATEMENTS))
