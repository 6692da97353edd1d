import re
from datetime import datetime, timezone

import pytest

from backend.core.errors import ConflictError, NotFoundError
from backend.models.models import Correspondence, StatusHistory, utcnow
from backend.schemas.schemas import CorrespondenceCreate, CorrespondenceUpdate, ReplyCreate
from backend.services import correspondence as workflow


def _history(db_session, correspondence_id):
    return (
        db_session.query(StatusHistory)
        .filter(StatusHistory.correspondence_id == correspondence_id)
        .order_by(StatusHistory.id)
        .all()
    )


def test_reference_number_format():
    now = datetime(2025, 1, 5, tzinfo=timezone.utc)
    assert re.fullmatch(r"W2025\d{4}", workflow.generate_reference_number("incoming", now))
    assert re.fullmatch(r"S2025\d{4}", workflow.generate_reference_number("outgoing", now))


def test_create_writes_initial_history(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk, type="outgoing")

    assert correspondence.reference_number.startswith("S")
    assert correspondence.current_status == "draft"
    assert correspondence.review_status == "not_reviewed"
    assert correspondence.created_by == clerk.id
    assert correspondence.sender_entity is not None

    history = _history(db_session, correspondence.id)
    assert [(h.old_status, h.new_status, h.changed_by) for h in history] == [("none", "draft", clerk.id)]


def test_create_honours_requested_initial_status(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk, current_status="received")
    history = _history(db_session, correspondence.id)
    assert correspondence.current_status == "received"
    assert (history[0].old_status, history[0].new_status) == ("none", "received")


def test_create_rejects_unknown_entity(db_session, create_user, create_entity):
    clerk = create_user(role_name="employee")
    sender = create_entity()
    payload = CorrespondenceCreate(
        type="incoming",
        subject="Missing receiver",
        description="-",
        sender_entity_id=sender.id,
        receiver_entity_id=9999,
        correspondence_date=datetime(2024, 1, 1),
    )
    with pytest.raises(NotFoundError):
        workflow.create_correspondence(db_session, payload, clerk.id)
    assert db_session.query(Correspondence).count() == 0


def test_create_retries_reference_collisions(db_session, create_user, create_correspondence, monkeypatch):
    clerk = create_user(role_name="employee")
    first = create_correspondence(clerk)

    candidates = iter([first.reference_number, first.reference_number, "W20240001"])
    monkeypatch.setattr(workflow, "generate_reference_number", lambda correspondence_type, now=None: next(candidates))
    second = create_correspondence(clerk)
    assert second.reference_number == "W20240001"


def test_create_gives_up_after_repeated_collisions(db_session, create_user, create_correspondence, monkeypatch):
    clerk = create_user(role_name="employee")
    first = create_correspondence(clerk)
    monkeypatch.setattr(workflow, "generate_reference_number", lambda correspondence_type, now=None: first.reference_number)
    with pytest.raises(ConflictError):
        create_correspondence(clerk)


def test_update_only_records_history_on_status_change(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk)

    workflow.update_correspondence(db_session, correspondence.id, CorrespondenceUpdate(subject="Revised"), clerk.id)
    assert len(_history(db_session, correspondence.id)) == 1

    updated = workflow.update_correspondence(
        db_session, correspondence.id, CorrespondenceUpdate(current_status="sent"), clerk.id
    )
    history = _history(db_session, correspondence.id)
    assert updated.subject == "Revised"
    assert updated.current_status == "sent"
    assert [(h.old_status, h.new_status) for h in history] == [("none", "draft"), ("draft", "sent")]

    workflow.update_correspondence(db_session, correspondence.id, CorrespondenceUpdate(current_status="sent"), clerk.id)
    assert len(_history(db_session, correspondence.id)) == 2


def test_set_status_always_appends_history(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk)

    workflow.set_status(db_session, correspondence.id, "draft", "No change", clerk.id)
    workflow.set_status(db_session, correspondence.id, "closed", None, clerk.id)

    history = _history(db_session, correspondence.id)
    assert [(h.old_status, h.new_status) for h in history] == [("none", "draft"), ("draft", "draft"), ("draft", "closed")]
    assert history[1].notes == "No change"


def test_mark_reviewed_leaves_workflow_status(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    reviewer = create_user(role_name="reviewer")
    correspondence = create_correspondence(clerk)

    reviewed = workflow.mark_reviewed(db_session, correspondence.id, reviewer.id)
    assert reviewed.review_status == "reviewed"
    assert reviewed.reviewed_by == reviewer.id
    assert reviewed.reviewed_at is not None
    assert reviewed.current_status == "draft"
    assert len(_history(db_session, correspondence.id)) == 1


def test_reply_forces_replied_and_records_prior_status(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk, current_status="received")

    reply = workflow.add_reply(db_session, correspondence.id, ReplyCreate(subject="Re", body="Answer"), clerk.id)
    assert reply.correspondence_id == correspondence.id

    db_session.expire_all()
    refreshed = workflow.get_correspondence(db_session, correspondence.id)
    assert refreshed.current_status == "replied"
    last = refreshed.status_history[-1]
    assert (last.old_status, last.new_status, last.notes) == ("received", "replied", "Reply added")
    assert [r.id for r in refreshed.replies] == [reply.id]


def test_reply_threading_requires_parent_on_same_correspondence(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    first = create_correspondence(clerk)
    second = create_correspondence(clerk)
    parent = workflow.add_reply(db_session, first.id, ReplyCreate(subject="Re", body="One"), clerk.id)

    child = workflow.add_reply(
        db_session, first.id, ReplyCreate(subject="Re: Re", body="Two", parent_reply_id=parent.id), clerk.id
    )
    assert child.parent_reply_id == parent.id

    with pytest.raises(NotFoundError):
        workflow.add_reply(
            db_session, second.id, ReplyCreate(subject="Re", body="Wrong thread", parent_reply_id=parent.id), clerk.id
        )


def test_soft_deleted_correspondence_is_hidden(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk)

    workflow.delete_correspondence(db_session, correspondence.id)

    assert db_session.get(Correspondence, correspondence.id).deleted_at is not None
    with pytest.raises(NotFoundError):
        workflow.get_correspondence(db_session, correspondence.id)
    with pytest.raises(NotFoundError):
        workflow.set_status(db_session, correspondence.id, "closed", None, clerk.id)
    rows, total = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters())
    assert rows == [] and total == 0


def test_soft_deleted_entity_cannot_be_referenced(db_session, create_user, create_entity, create_correspondence):
    clerk = create_user(role_name="employee")
    retired = create_entity(name_en="Retired agency")
    retired.deleted_at = utcnow()
    db_session.commit()

    with pytest.raises(NotFoundError):
        create_correspondence(clerk, sender=retired)


def test_scenario_history_after_create_status_and_reply(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    correspondence = create_correspondence(clerk)

    workflow.set_status(db_session, correspondence.id, "sent", None, clerk.id)
    workflow.add_reply(db_session, correspondence.id, ReplyCreate(subject="Re", body="Thanks"), clerk.id)

    db_session.expire_all()
    final = workflow.get_correspondence(db_session, correspondence.id)
    assert final.current_status == "replied"
    assert [(h.old_status, h.new_status) for h in final.status_history] == [
        ("none", "draft"),
        ("draft", "sent"),
        ("sent", "replied"),
    ]
