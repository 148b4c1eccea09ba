import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from psycopg_pool import AsyncConnectionPool

from expense_api.core.errors import ValidationError
from expense_api.models.transactions import (
    NewTransaction,
    TransactionCreateRequest,
    TransactionItem,
    TransactionSummary,
    UserTransactionCount,
)

logger = logging.getLogger(__name__)

TRANSACTION_COLUMNS = "id, user_id, email, title, amount, category, note, created_at"

CREATE_FIELDS_MESSAGE = "Missing or invalid fields: user_id, title and numeric amount are required"

# Amounts are returned as JSON numbers and summed per user; keep both finite.
MAX_ABS_AMOUNT = Decimal("1e15")


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite() or abs(amount) >= MAX_ABS_AMOUNT:
        return None
    return amount


def parse_transaction_id(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValidationError("Invalid transaction ID", fields=["id"])
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid transaction ID", fields=["id"])


def require_user_id(user_id: str | None) -> str:
    cleaned = clean_text(user_id)
    if not cleaned:
        raise ValidationError("Missing userId", fields=["user_id"])
    return cleaned


def build_new_transaction(payload: TransactionCreateRequest, requester_id: str | None = None) -> NewTransaction:
    """Validate a create body before any I/O.

    A body ``user_id`` wins; ``requester_id`` only fills it in when absent.
    """
    user_id = clean_text(payload.user_id) or clean_text(requester_id)
    title = clean_text(payload.title)
    amount = parse_amount(payload.amount)

    missing = []
    if not user_id:
        missing.append("user_id")
    if not title:
        missing.append("title")
    if amount is None:
        missing.append("amount")
    if missing:
        raise ValidationError(CREATE_FIELDS_MESSAGE, fields=missing)

    return NewTransaction(
        user_id=user_id,
        email=clean_text(payload.email),
        title=title,
        amount=amount,
        category=clean_text(payload.category),
        note=clean_text(payload.note),
        created_at=payload.created_at,
    )


class LedgerService:
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool

    async def list_for_user(self, user_id: str) -> list[TransactionItem]:
        user_id = require_user_id(user_id)
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                f"""
                SELECT {TRANSACTION_COLUMNS}
                FROM transactions
                WHERE user_id=%s
                ORDER BY created_at DESC, id DESC
                """,
                (user_id,),
            )
            rows = await cur.fetchall()
        logger.debug("Listed %d transactions for user_id=%s", len(rows), user_id)
        return [TransactionItem.model_validate(row) for row in rows]

    async def create(self, tx: NewTransaction) -> TransactionItem:
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                f"""
                INSERT INTO transactions (user_id, email, title, amount, category, note, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, COALESCE(%s, NOW()))
                RETURNING {TRANSACTION_COLUMNS}
                """,
                (tx.user_id, tx.email, tx.title, tx.amount, tx.category, tx.note, tx.created_at),
            )
            row = await cur.fetchone()
        created = TransactionItem.model_validate(row)
        logger.info("Created transaction id=%s for user_id=%s", created.id, created.user_id)
        return created

    async def delete(self, tx_id: int, owner_id: str | None = None) -> TransactionItem | None:
        """Hard-delete a row and return it, or None when nothing matched.

        With ``owner_id`` only a row owned by that user is eligible.
        """
        sql = f"DELETE FROM transactions WHERE id=%s RETURNING {TRANSACTION_COLUMNS}"
        params: tuple[Any, ...] = (tx_id,)
        if owner_id is not None:
            sql = f"DELETE FROM transactions WHERE id=%s AND user_id=%s RETURNING {TRANSACTION_COLUMNS}"
            params = (tx_id, owner_id)
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(sql, params)
            row = await cur.fetchone()
        logger.info("Delete transaction id=%s -> rows=%d", tx_id, 1 if row else 0)
        if not row:
            return None
        return TransactionItem.model_validate(row)

    async def summarize(self, user_id: str) -> TransactionSummary:
        user_id = require_user_id(user_id)
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                """
                SELECT COALESCE(SUM(amount), 0) AS balance,
                       COALESCE(SUM(amount) FILTER (WHERE amount > 0), 0) AS income,
                       COALESCE(SUM(amount) FILTER (WHERE amount < 0), 0) AS expenses
                FROM transactions
                WHERE user_id=%s
                """,
                (user_id,),
            )
            row = await cur.fetchone()
        row = row or {}
        return TransactionSummary(
            balance=row.get("balance") or 0,
            income=row.get("income") or 0,
            expenses=row.get("expenses") or 0,
        )

    async def count_by_user(self) -> list[UserTransactionCount]:
        async with self._pool.connection() as conn, conn.cursor() as cur:
            await cur.execute(
                """
                SELECT user_id, COUNT(*) AS cnt
                FROM transactions
                GROUP BY user_id
                ORDER BY cnt DESC
                """
            )
            rows = await cur.fetchall()
        return [UserTransactionCount.model_validate(row) for row in rows]
