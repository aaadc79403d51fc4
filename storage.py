"""
Ledger store: the storage service shared by every request.

Wraps the Flask-SQLAlchemy extension with an explicit lifecycle
(init on app start, health check, shutdown) and a transactional helper
that turns driver failures into StorageError.
"""

import logging
from contextlib import contextmanager

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from exceptions import StorageError
from models import db, Category, DEFAULT_CATEGORIES

logger = logging.getLogger(__name__)


class LedgerStore:
    """Owns the database binding for a Flask application."""

    def __init__(self, database=db):
        self.db = database
        self.app = None

    def init_app(self, app, seed_categories=True):
        self.db.init_app(app)
        self.app = app
        app.extensions['ledger_store'] = self
        with app.app_context():
            self.db.create_all()
            if seed_categories:
                self._seed_categories()
            logger.info("Ledger store initialised (%s)", self.db.engine.url.render_as_string(hide_password=True))

    @property
    def session(self):
        return self.db.session

    def _seed_categories(self):
        if self.session.query(Category.id).first() is not None:
            return
        for name in DEFAULT_CATEGORIES:
            self.session.add(Category(name=name))
        self.session.commit()
        logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))

    @contextmanager
    def atomic(self):
        """
        Run a unit of work in one database transaction.

        Commits on success and rolls back on any exception. IntegrityError is
        re-raised as-is so callers can translate constraint violations;
        other SQLAlchemy errors become StorageError.
        """
        try:
            yield self.session
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Storage failure: %s", exc, exc_info=True)
            raise StorageError("Storage operation failed.", original_error=exc) from exc
        except Exception:
            self.session.rollback()
            raise

    def health_check(self) -> bool:
        try:
            self.session.execute(text('SELECT 1'))
            return True
        except SQLAlchemyError as exc:
            logger.error("Database health check failed: %s", exc)
            self.session.rollback()
            return False

    def shutdown(self):
        if self.app is None:
            return
        with self.app.app_context():
            self.session.remove()
            self.db.engine.dispose()
        logger.info("Ledger store shut down")


def get_store(app=None) -> LedgerStore:
    """Return the store registered on ``app`` (or the current app)."""
    return (app or current_app).extensions['ledger_store']
