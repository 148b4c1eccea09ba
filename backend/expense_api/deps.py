import logging
from collections.abc import Iterator
from contextlib import contextmanager

import psycopg
from fastapi import Request

from expense_api.core.config import Settings
from expense_api.core.errors import StoreError
from expense_api.services.ledger import LedgerService
from expense_api.services.rates import RatesService
from expense_api.services.users import UserService

logger = logging.getLogger(__name__)


def get_settings(req: Request) -> Settings:
    return req.app.state.settings


def get_ledger(req: Request) -> LedgerService:
    return req.app.state.ledger


def get_users(req: Request) -> UserService:
    return req.app.state.users


def get_rates(req: Request) -> RatesService:
    return req.app.state.rates


@contextmanager
def store_errors(message: str) -> Iterator[None]:
    """Map driver and pool failures to a 500 with a generic message."""
    try:
        yield
    except psycopg.Error as exc:
        logger.exception("%s", message)
        raise StoreError(message, details=str(exc)) from exc
