"""
Tests for the persistence boundary: engine lifecycle, session scope,
FlexibleBoolean columns and the uniqueness primitives.
"""

from datetime import date, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, StatementError

from payout_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from payout_kernel.models import PropertyModel, StatementModel, WebhookEventModel
from payout_scheduler.models import TagScheduleModel


@pytest.fixture
def file_engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'payouts.db'}")
    create_tables()
    yield engine
    reset_engine()


class TestEngineLifecycle:

    def test_uninitialized_engine_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_session_scope_commits(self, file_engine):
        with session_scope() as session:
            session.add(PropertyModel(name="Committed"))

        with session_scope() as session:
            names = session.execute(select(PropertyModel.name)).scalars().all()
        assert names == ["Committed"]

    def test_session_scope_rolls_back(self, file_engine):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(PropertyModel(name="Discarded"))
                session.flush()
                raise RuntimeError("abort")

        with session_scope() as session:
            assert session.execute(select(PropertyModel)).first() is None


class TestColumns:

    @pytest.mark.parametrize("raw", ["yes", "TRUE", 1, True])
    def test_flexible_boolean_truthy(self, session, raw):
        prop = PropertyModel(name="Flags", cleaning_fee_pass_through=raw)
        session.add(prop)
        session.flush()
        session.expire(prop)

        assert prop.cleaning_fee_pass_through is True
        assert prop.to_dto().cleaning_fee_pass_through is True

    def test_flexible_boolean_rejects_garbage(self, session):
        session.add(PropertyModel(name="Bad", disregard_tax="sometimes"))
        with pytest.raises(StatementError):
            session.flush()


class TestUniqueness:

    def _statement(self, entity_key: str = "property:p-1") -> StatementModel:
        return StatementModel(
            entity_key=entity_key,
            period_start=date(2026, 1, 1),
            period_end=date(2026, 1, 31),
        )

    def test_one_statement_per_entity_and_period(self, session):
        session.add(self._statement())
        session.flush()

        session.add(self._statement())
        with pytest.raises(IntegrityError):
            session.flush()

    def test_statement_defaults(self, session):
        statement = self._statement("group:g-1")
        session.add(statement)
        session.flush()

        assert statement.status == "draft"
        assert statement.payout_status == "none"
        assert statement.payout_attempts == 0

    def test_webhook_event_id_unique(self, session):
        received = datetime(2026, 1, 5, 9, 0)
        session.add(WebhookEventModel(event_id="evt_1", event_type="topup.succeeded", received_at=received))
        session.flush()

        session.add(WebhookEventModel(event_id="evt_1", event_type="topup.failed", received_at=received))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_tag_name_unique(self, session):
        session.add(TagScheduleModel(tag_name="weekly-owners", frequency="weekly", day_of_week=1))
        session.flush()

        session.add(TagScheduleModel(tag_name="weekly-owners", frequency="monthly", day_of_month=1))
        with pytest.raises(IntegrityError):
            session.flush()
