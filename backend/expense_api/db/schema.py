"""Table bootstrap and one-shot migrations.

``transactions`` and ``users`` are created in their latest shape. Databases
created by older snapshots (``category NOT NULL``, no ``note``/``email``) are
upgraded by the ordered migrations below, each recorded in
``schema_migrations`` so it is applied at most once.
"""

import logging

from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

CREATE_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS transactions (
    id SERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    amount NUMERIC NOT NULL,
    category TEXT,
    note TEXT,
    email TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
)
"""

CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id VARCHAR(255) PRIMARY KEY,
    name VARCHAR(255),
    image_uri TEXT,
    contact VARCHAR(50),
    address TEXT
)
"""

CREATE_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    applied_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
)
"""

MIGRATIONS: list[tuple[str, tuple[str, ...]]] = [
    (
        "0001_transactions_optional_columns",
        (
            "ALTER TABLE transactions ADD COLUMN IF NOT EXISTS note TEXT",
            "ALTER TABLE transactions ADD COLUMN IF NOT EXISTS email TEXT",
        ),
    ),
    (
        "0002_transactions_category_nullable",
        ("ALTER TABLE transactions ALTER COLUMN category DROP NOT NULL",),
    ),
    (
        "0003_transactions_user_created_idx",
        (
            "CREATE INDEX IF NOT EXISTS transactions_user_created_idx "
            "ON transactions (user_id, created_at DESC)",
        ),
    ),
]


async def apply_migrations(cur) -> list[str]:
    await cur.execute(CREATE_MIGRATIONS)
    await cur.execute("SELECT name FROM schema_migrations")
    applied = {row["name"] for row in await cur.fetchall()}

    newly_applied = []
    for name, statements in MIGRATIONS:
        if name in applied:
            continue
        for statement in statements:
            await cur.execute(statement)
        await cur.execute("INSERT INTO schema_migrations (name) VALUES (%s)", (name,))
        newly_applied.append(name)
    return newly_applied


async def init_schema(pool: AsyncConnectionPool) -> None:
    async with pool.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.execute(CREATE_TRANSACTIONS)
                await cur.execute(CREATE_USERS)
                newly_applied = await apply_migrations(cur)
    for name in newly_applied:
        logger.info("Applied migration %s", name)
    logger.info("Database schema ready")
