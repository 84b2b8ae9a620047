"""Tests for engine lifecycle and session_scope (dairy_kernel.db.engine)."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from dairy_kernel.db.engine import get_engine, get_session, reset_engine, session_scope
from dairy_modules.appro.orm import SupplierModel


def _supplier(code):
    return SupplierModel(id=uuid4(), code=code, name=f"Supplier {code}", created_by_id=uuid4())


def _supplier_count():
    with session_scope() as session:
        return session.execute(select(func.count()).select_from(SupplierModel)).scalar_one()


class TestSessionScope:

    def test_commits_on_exit(self, db_engine):
        with session_scope() as session:
            session.add(_supplier("FRN-A"))
        assert _supplier_count() == 1

    def test_rolls_back_on_error(self, db_engine, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(_supplier("FRN-B"))
                session.flush()
                raise RuntimeError("label printer offline")

        assert _supplier_count() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


class TestEngineLifecycle:

    def test_uninitialized_engine(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="init_engine_from_url"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()
