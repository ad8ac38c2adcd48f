"""
Progress ledger tests - per-activity, per-department records.

Covers:
    - eager ledger creation (one pending record per department)
    - active record = first pending record in line order
    - conditional completion and the StateError paths
    - one-step return: current closed as a return, previous reset
    - transition log kinds and derived status
"""

import pytest
from sqlalchemy import text

from prodflow.core.departments import DepartmentSequence
from prodflow.core.exceptions import NotFoundError, StateError, ValidationError
from prodflow.models import db
from prodflow.models.workflow import TRANSITION_KINDS, Activity, ProgressRecord, derive_status
from prodflow.services.progress_ledger import ProgressLedger

LINE = DepartmentSequence(["gabarito", "impressao", "batida"])


# ═════════════════════════════════════════════════════════════════════════════
# ORM Helper Factories
# ═════════════════════════════════════════════════════════════════════════════


def _activity(**kw) -> Activity:
    """Create and flush an Activity row (no ledger)."""
    defaults = {
        "title": "Bandeira 2x3",
        "description": "Tecido oxford",
        "image": "uploads/bandeira.png",
        "quantity": 2,
    }
    defaults.update(kw)
    a = Activity(**defaults)
    db.session.add(a)
    db.session.flush()
    return a


@pytest.fixture()
def led():
    return ProgressLedger(LINE)


@pytest.fixture()
def act(led):
    a = _activity()
    led.create_ledger(a)
    db.session.commit()
    return a


def _statuses(led, activity_id):
    return [(r.department, r.status) for r in led.records(activity_id)]


# ═════════════════════════════════════════════════════════════════════════════
# Creation & reads
# ═════════════════════════════════════════════════════════════════════════════


class TestCreateLedger:
    def test_one_pending_record_per_department(self, led, act):
        records = led.records(act.id)
        assert [r.department for r in records] == ["gabarito", "impressao", "batida"]
        assert [r.position for r in records] == [0, 1, 2]
        assert all(r.status == "pending" for r in records)

    def test_first_department_is_active(self, led, act):
        assert led.get_active(act.id).department == "gabarito"

    def test_empty_sequence_rejected(self):
        a = _activity()
        with pytest.raises(ValidationError, match="empty"):
            ProgressLedger(DepartmentSequence([])).create_ledger(a)

    def test_unknown_activity(self, led):
        with pytest.raises(NotFoundError, match="Activity id=999"):
            led.get_active(999)

    def test_get_record(self, led, act):
        rec = led.get_record(act.id, "Impressao")
        assert rec.department == "impressao"
        assert rec.position == 1


# ═════════════════════════════════════════════════════════════════════════════
# complete()
# ═════════════════════════════════════════════════════════════════════════════


class TestComplete:
    def test_complete_active_moves_pointer(self, led, act):
        rec = led.complete(act.id, "gabarito", "Ana", notes="ok")
        db.session.commit()

        assert rec.status == "completed"
        assert rec.completed_by == "Ana"
        assert rec.completed_at is not None
        assert rec.completion_kind == "completed"
        assert led.get_active(act.id).department == "impressao"

    def test_non_active_department_raises_and_mutates_nothing(self, led, act):
        before = _statuses(led, act.id)
        with pytest.raises(StateError, match="not active"):
            led.complete(act.id, "impressao", "Bia")
        db.session.rollback()
        assert _statuses(led, act.id) == before
        assert led.transitions(act.id) == []

    def test_blank_actor_rejected(self, led, act):
        with pytest.raises(ValidationError, match="completed_by is required"):
            led.complete(act.id, "gabarito", "   ")

    def test_non_string_actor_rejected(self, led, act):
        with pytest.raises(ValidationError, match="completed_by must be a string"):
            led.complete(act.id, "gabarito", 123)
        assert led.get_active(act.id).department == "gabarito"

    def test_non_string_notes_rejected(self, led, act):
        with pytest.raises(ValidationError, match="notes must be a string"):
            led.complete(act.id, "gabarito", "Ana", notes={"text": "ok"})
        assert led.transitions(act.id) == []

    def test_unknown_department_rejected(self, led, act):
        with pytest.raises(ValidationError, match="Unknown department"):
            led.complete(act.id, "costura", "Ana")

    def test_completing_a_finished_activity(self, led, act):
        for dept in LINE:
            led.complete(act.id, dept, "Ana")
        db.session.commit()

        assert led.get_active(act.id) is None
        with pytest.raises(StateError, match="already passed every department"):
            led.complete(act.id, "batida", "Ana")

    def test_stale_view_loses_the_conditional_write(self, led, act):
        """A writer whose view is stale changes zero rows and gets StateError."""
        led.records(act.id)  # load into the identity map
        db.session.execute(
            text("UPDATE activity_progress SET status='completed', completed_by='Other' "
                 "WHERE activity_id=:a AND department='gabarito'"),
            {"a": act.id},
        )
        with pytest.raises(StateError):
            led.complete(act.id, "gabarito", "Ana")
        db.session.rollback()


# ═════════════════════════════════════════════════════════════════════════════
# return_to_previous()
# ═════════════════════════════════════════════════════════════════════════════


class TestReturnToPrevious:
    def test_first_department_has_no_previous(self, led, act):
        with pytest.raises(StateError, match="no previous department"):
            led.return_to_previous(act.id, "gabarito", "Ana")

    def test_return_resets_previous_and_flags_current(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        led.complete(act.id, "impressao", "Bia")
        db.session.commit()

        previous, current = led.return_to_previous(act.id, "batida", "Caio", notes="peça rasgada")
        db.session.commit()

        assert previous.department == "impressao"
        assert previous.status == "pending"
        assert previous.completed_by is None
        assert previous.completed_at is None
        assert previous.returned_by == "Caio"
        assert previous.returned_at is not None

        assert current.department == "batida"
        assert current.status == "completed"
        assert current.completed_by == "Caio"
        assert current.completion_kind == "returned"

        assert led.get_active(act.id).department == "impressao"

    def test_return_from_non_active_department(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        db.session.commit()
        with pytest.raises(StateError, match="not active"):
            led.return_to_previous(act.id, "batida", "Caio")

    def test_blank_returner_rejected(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        db.session.commit()
        with pytest.raises(ValidationError, match="returned_by is required"):
            led.return_to_previous(act.id, "impressao", "")

    def test_readvance_reopens_the_returned_record(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        led.complete(act.id, "impressao", "Bia")
        led.return_to_previous(act.id, "batida", "Caio")
        db.session.commit()

        led.complete(act.id, "impressao", "Bia")
        db.session.commit()

        assert _statuses(led, act.id) == [
            ("gabarito", "completed"), ("impressao", "completed"), ("batida", "pending"),
        ]
        batida = led.get_record(act.id, "batida")
        assert batida.completed_by is None
        assert led.get_active(act.id).department == "batida"


# ═════════════════════════════════════════════════════════════════════════════
# Transition log
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitionLog:
    def test_kinds_in_order(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        led.complete(act.id, "impressao", "Bia")
        led.return_to_previous(act.id, "batida", "Caio", notes="peça rasgada")
        led.complete(act.id, "impressao", "Bia")
        db.session.commit()

        log = [(t.department, t.kind, t.actor) for t in led.transitions(act.id)]
        assert log == [
            ("gabarito", "completed", "Ana"),
            ("impressao", "completed", "Bia"),
            ("batida", "returned", "Caio"),
            ("impressao", "reset", "Caio"),
            ("impressao", "completed", "Bia"),
            ("batida", "reopened", "Bia"),
        ]

    def test_status_matches_log_tail(self, led, act):
        led.complete(act.id, "gabarito", "Ana")
        led.complete(act.id, "impressao", "Bia")
        led.return_to_previous(act.id, "batida", "Caio")
        db.session.commit()

        for rec in db.session.execute(db.select(ProgressRecord)).scalars():
            tail = rec.last_transition.kind if rec.last_transition else None
            assert rec.status == derive_status(tail)

    def test_closing_kinds_project_to_completed(self):
        assert {kind: derive_status(kind) for kind in TRANSITION_KINDS} == {
            "completed": "completed",
            "returned": "completed",
            "reset": "pending",
            "reopened": "pending",
        }
        assert derive_status(None) == "pending"
