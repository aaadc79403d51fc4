"""
Tests for configuration, logging setup and the ledger store lifecycle.
"""

import logging
import os
import tempfile
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from config import setup_logging
from exceptions import StorageError
from models import Category, DEFAULT_CATEGORIES
from storage import LedgerStore, get_store


@pytest.fixture()
def clean_root_logger():
    """Give each test an empty root logger and restore the original afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers = []
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


@pytest.mark.usefixtures('clean_root_logger')
class TestSetupLogging:

    def test_basic_logging_config(self):
        setup_logging({'LOG_LEVEL': 'warning'})

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert any(isinstance(h, logging.StreamHandler) for h in root.handlers)

    def test_file_logging_enabled(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = os.path.join(tmpdir, 'logs', 'budget.log')

            setup_logging({'LOG_LEVEL': 'INFO', 'LOG_FILE': log_file})

            file_handlers = [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]
            assert len(file_handlers) == 1
            assert os.path.isdir(os.path.join(tmpdir, 'logs'))
            for handler in file_handlers:
                handler.close()

    def test_unknown_level_is_rejected(self):
        with pytest.raises(ValueError):
            setup_logging({'LOG_LEVEL': 'chatty'})


class TestCreateApp:

    def test_overrides_apply(self, app):
        assert app.config['TESTING'] is True
        assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite://'

    def test_custom_api_prefix(self):
        app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://', 'API_PREFIX': '/v2'})
        try:
            client = app.test_client()
            assert client.get('/v2/health').status_code == 200
            assert client.get('/api/health').status_code == 404
        finally:
            get_store(app).shutdown()


class TestLedgerStore:

    def test_categories_seeded_once(self, store):
        store._seed_categories()

        assert store.session.query(Category).count() == len(DEFAULT_CATEGORIES)

    def test_health_check(self, store):
        assert store.health_check() is True

    def test_health_check_reports_failure(self, store, monkeypatch):
        broken_session = Mock()
        broken_session.execute.side_effect = OperationalError('SELECT 1', {}, Exception('database is gone'))
        monkeypatch.setattr(LedgerStore, 'session', property(lambda self: broken_session))

        assert store.health_check() is False

    def test_atomic_rolls_back_and_wraps_errors(self, store):
        with pytest.raises(StorageError) as exc_info:
            with store.atomic() as session:
                session.add(Category(name='Pets'))
                raise OperationalError('INSERT', {}, Exception('disk I/O error'))

        assert isinstance(exc_info.value.original_error, OperationalError)
        assert store.session.query(Category).filter_by(name='Pets').count() == 0

    def test_atomic_commits(self, store):
        with store.atomic() as session:
            session.add(Category(name='Pets'))

        assert store.session.query(Category).filter_by(name='Pets').count() == 1
