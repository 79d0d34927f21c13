import pytest
from pydantic import ValidationError

from schedsync.domain.schedules.errors import EmptyDays, InvalidTimeRange, MissingRoom
from schedsync.domain.schedules.schemas import Schedule
from schedsync.domain.schedules.validation import describe, same_slot, scope_of, sort_key, to_copy, validate_schedule
from factories import make_schedule


def test_days_are_normalized_and_deduplicated():
    s = make_schedule(days=["Monday", "mon", "WED", "Thurs"])
    assert s.days == ["mon", "wed", "thu"]


def test_unknown_day_is_rejected():
    with pytest.raises(ValidationError):
        make_schedule(days=["Funday"])


@pytest.mark.parametrize("value", ["8:00", "24:00", "12:60", "ab:cd", ""])
def test_bad_time_format_is_rejected(value):
    with pytest.raises(ValidationError):
        make_schedule(start=value)


def test_validate_rejects_inverted_and_empty_range():
    with pytest.raises(InvalidTimeRange):
        validate_schedule(make_schedule(start="10:00", end="09:00"))
    with pytest.raises(InvalidTimeRange):
        validate_schedule(make_schedule(start="09:00", end="09:00"))


def test_validate_rejects_empty_days():
    with pytest.raises(EmptyDays):
        validate_schedule(make_schedule(days=[]))


@pytest.mark.parametrize("room", [None, "", "   "])
def test_validate_rejects_missing_room(room):
    with pytest.raises(MissingRoom):
        validate_schedule(make_schedule(room=room))


def test_validate_reports_time_range_before_days():
    with pytest.raises(InvalidTimeRange):
        validate_schedule(make_schedule(days=[], start="10:00", end="09:00", room=None))


def test_validation_error_carries_reason():
    with pytest.raises(MissingRoom) as exc:
        validate_schedule(make_schedule(room=""))
    assert exc.value.status_code == 422
    assert exc.value.details["reason"] == "missing_room"


def test_scope_treats_blank_as_missing():
    assert scope_of(make_schedule(semester="  ", academic_year="")) == (None, None)
    assert scope_of(make_schedule(semester="Fall", academic_year="2024")) == ("Fall", "2024")


def test_same_slot_ignores_id_and_day_order():
    a = make_schedule(days=["mon", "wed"], id="a")
    b = make_schedule(days=["wed", "mon"], id="b")
    assert same_slot(a, b)
    assert not same_slot(a, make_schedule(days=["mon", "wed"], end="09:30"))


def test_describe_and_sort_key():
    s = make_schedule(days=["wed", "mon"], subject_code="CS101")
    assert describe(s) == "Wed/Mon 08:00-09:00 CS101"
    later = make_schedule(days=["mon"], start="10:00", end="11:00")
    tuesday = make_schedule(days=["tue"], start="07:00", end="08:00")
    assert sorted([tuesday, later, s], key=sort_key) == [s, later, tuesday]


def test_to_copy_keeps_fields_and_tags_instructor():
    s = make_schedule(id="sch_1", subject_id="su1", section_id="se1", semester="Fall")
    copy = to_copy(s, "ins_1")
    assert copy.schedule_id == "sch_1"
    assert copy.instructor_id == "ins_1"
    assert Schedule(**copy.model_dump()) == s
    # Copiar una copia no duplica campos
    assert to_copy(copy, "ins_2").instructor_id == "ins_2"
