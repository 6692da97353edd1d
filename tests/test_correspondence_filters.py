from datetime import date, datetime, timedelta

import pytest

from backend.core.errors import ValidationError
from backend.models.models import Correspondence
from backend.services import correspondence as workflow
from backend.utils.pagination import build_pagination, page_count


def _ids(rows):
    return [row.id for row in rows]


def test_empty_filters_only_exclude_soft_deleted():
    conditions = workflow.build_correspondence_conditions(workflow.CorrespondenceFilters())
    assert len(conditions) == 1

    with_deleted = workflow.build_correspondence_conditions(workflow.CorrespondenceFilters(include_deleted=True))
    assert with_deleted == []


def test_every_supplied_filter_adds_a_condition():
    filters = workflow.CorrespondenceFilters(
        type="incoming",
        status="draft",
        review_status="not_reviewed",
        sender_entity_id=1,
        receiver_entity_id=2,
        date_range=workflow.DateRange(start=date(2024, 1, 1), end=date(2024, 1, 31)),
        search="budget",
    )
    assert len(workflow.build_correspondence_conditions(filters)) == 9


def test_blank_search_is_ignored():
    filters = workflow.CorrespondenceFilters(search="   ")
    assert len(workflow.build_correspondence_conditions(filters)) == 1


def test_inverted_date_range_is_rejected():
    with pytest.raises(ValidationError):
        workflow.DateRange(start=date(2024, 2, 1), end=date(2024, 1, 1))


def test_like_pattern_escapes_wildcards():
    assert workflow.like_pattern("50%_off\\") == "%50\\%\\_off\\\\%"


def test_filters_by_type_status_and_entity(db_session, create_user, create_entity, create_correspondence):
    clerk = create_user(role_name="employee")
    ministry = create_entity(name_en="Ministry")
    incoming = create_correspondence(clerk, type="incoming", sender=ministry)
    outgoing = create_correspondence(clerk, type="outgoing", current_status="sent")

    rows, total = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(type="outgoing"))
    assert (_ids(rows), total) == ([outgoing.id], 1)

    rows, _ = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(status="draft"))
    assert _ids(rows) == [incoming.id]

    rows, _ = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(sender_entity_id=ministry.id))
    assert _ids(rows) == [incoming.id]


def test_date_range_includes_whole_end_day(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    late_evening = create_correspondence(clerk, correspondence_date=datetime(2024, 3, 31, 23, 30))
    next_day = create_correspondence(clerk, correspondence_date=datetime(2024, 4, 1, 0, 0))
    first_day = create_correspondence(clerk, correspondence_date=datetime(2024, 3, 1, 0, 0))

    filters = workflow.CorrespondenceFilters(date_range=workflow.DateRange(start=date(2024, 3, 1), end=date(2024, 3, 31)))
    rows, total = workflow.list_correspondences(db_session, filters)
    assert total == 2
    assert set(_ids(rows)) == {late_evening.id, first_day.id}
    assert next_day.id not in _ids(rows)


def test_search_matches_subject_description_and_reference(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    budget = create_correspondence(clerk, subject="Annual BUDGET review")
    memo = create_correspondence(clerk, subject="Memo", description="Covers the budget gap")
    other = create_correspondence(clerk, subject="Staffing", description="Hiring plan")

    rows, _ = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(search="budget"))
    assert set(_ids(rows)) == {budget.id, memo.id}

    rows, _ = workflow.list_correspondences(
        db_session, workflow.CorrespondenceFilters(search=other.reference_number.lower())
    )
    assert _ids(rows) == [other.id]


def test_search_treats_percent_literally(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    discount = create_correspondence(clerk, subject="10% discount")
    create_correspondence(clerk, subject="100 units")

    rows, _ = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(search="10%"))
    assert _ids(rows) == [discount.id]


def test_pages_are_newest_first_and_cover_all_rows(db_session, create_user, create_correspondence):
    clerk = create_user(role_name="employee")
    created = [create_correspondence(clerk, subject=f"Item {index}") for index in range(7)]
    base = datetime(2024, 1, 1)
    for offset, correspondence in enumerate(created):
        db_session.get(Correspondence, correspondence.id).created_at = base + timedelta(hours=offset)
    db_session.commit()

    seen = []
    for page in (1, 2, 3):
        rows, total = workflow.list_correspondences(db_session, workflow.CorrespondenceFilters(), page=page, limit=3)
        assert total == 7
        assert len(rows) == (3 if page < 3 else 1)
        seen.extend(_ids(rows))

    assert seen == [correspondence.id for correspondence in reversed(created)]
    assert build_pagination(7, 1, 3) == {"total": 7, "page": 1, "limit": 3, "pages": 3}


def test_page_count_rounds_up():
    assert page_count(0, 10) == 0
    assert page_count(10, 10) == 1
    assert page_count(11, 10) == 2
