# Overview: Transaction helpers; row locks and bounded retry on optimistic-concurrency failures.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id_col on mutable rows still catches lost updates there.
    """
    return query.with_for_update()


def _retry_policy(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if attempts is None:
        attempts = current_app.config.get("TX_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TX_RETRY_BACKOFF_SECONDS", 0.1)
    return max(1, int(attempts)), float(backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a read-modify-write unit of work with retry on concurrency failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) with exponential backoff. When attempts are
    exhausted a ConflictError is raised. Any other exception rolls the session
    back and propagates unchanged, so a rejected operation never leaves
    half-applied changes in the session.
    """
    attempts, backoff_base = _retry_policy(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Transaction conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if attempt >= attempts - 1:
                raise ConflictError(
                    "The record was modified concurrently; please retry",
                    retryable=True,
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise

