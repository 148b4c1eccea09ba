from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from expense_api.core.config import Settings


def create_db_pool(settings: Settings) -> AsyncConnectionPool:
    return AsyncConnectionPool(
        settings.database_url,
        min_size=settings.db_pool_min,
        max_size=settings.db_pool_max,
        timeout=settings.db_pool_timeout,
        max_waiting=settings.db_pool_max_waiting,
        open=False,
        kwargs={"row_factory": dict_row},
    )


async def open_db_pool(pool: AsyncConnectionPool) -> None:
    await pool.open(wait=True)


async def close_db_pool(pool: AsyncConnectionPool) -> None:
    await pool.close()
