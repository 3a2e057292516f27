from datetime import datetime, timedelta, timezone

import pytest

from shared.moment import (
    EMPTY_MOMENT,
    InstanceState,
    Moment,
    MomentValidationError,
    RenderedView,
    SizeClass,
    SkinType,
    coerce_timestamp,
    format_utc_iso,
    parse_iso8601_utc,
    parse_size_class,
    parse_skin_type,
)


def test_coerce_timestamp_accepts_epoch_milliseconds():
    assert coerce_timestamp(1_700_000_000_000) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert coerce_timestamp(1_700_000_000_000.0) == coerce_timestamp(1_700_000_000_000)


@pytest.mark.parametrize("value", [None, 0, -5, "", "   "])
def test_coerce_timestamp_treats_unset_values_as_missing(value):
    assert coerce_timestamp(value) is None


def test_coerce_timestamp_normalises_aware_datetimes_to_utc():
    local = datetime(2026, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    result = coerce_timestamp(local)
    assert result == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert result.tzinfo == timezone.utc


@pytest.mark.parametrize("value", [datetime(2026, 1, 1), True, object()])
def test_coerce_timestamp_rejects_ambiguous_input(value):
    with pytest.raises(MomentValidationError):
        coerce_timestamp(value)


def test_parse_iso8601_requires_utc():
    assert parse_iso8601_utc("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(MomentValidationError):
        parse_iso8601_utc("2026-01-01T00:00:00+02:00")
    with pytest.raises(MomentValidationError):
        parse_iso8601_utc("2026-01-01T00:00:00")
    with pytest.raises(MomentValidationError):
        parse_iso8601_utc("yesterday")


def test_format_utc_iso_uses_trailing_z():
    assert format_utc_iso(datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)) == "2026-03-04T05:06:07Z"
    assert format_utc_iso(None) is None


def test_moment_record_preserves_empty_versus_unset_name():
    blank = Moment.from_record(Moment(partner_name="").to_record())
    unset = Moment.from_record(Moment().to_record())
    assert blank.partner_name == ""
    assert unset.partner_name is None
    assert unset.is_empty
    assert not blank.is_empty


def test_moment_expiry_is_inclusive_of_the_deadline():
    deadline = datetime(2026, 10, 20, tzinfo=timezone.utc)
    moment = Moment(photo_ref="a.jpg", expires_at=deadline)
    assert not moment.is_expired(reference=deadline - timedelta(seconds=1))
    assert moment.is_expired(reference=deadline)
    assert not EMPTY_MOMENT.is_expired(reference=deadline)


@pytest.mark.parametrize(
    "record",
    [
        "not json",
        "[1, 2]",
        '{"photo_ref": 5}',
        '{"captured_at": 1700000000000}',
    ],
)
def test_moment_from_record_rejects_malformed_records(record):
    with pytest.raises(MomentValidationError):
        Moment.from_record(record)


@pytest.mark.parametrize(
    "record",
    [
        '{"skin_type": "hologram"}',
        '{"size_class": "huge"}',
        '{"toggle": "yes"}',
        '{"extra": {"a": 1}}',
    ],
)
def test_instance_state_from_record_rejects_malformed_records(record):
    with pytest.raises(MomentValidationError):
        InstanceState.from_record(record)


def test_instance_state_toggle_and_resize_return_new_values():
    state = InstanceState(skin_type=SkinType.FLIP_CARD)
    flipped = state.toggled()
    assert flipped.toggle and not state.toggle
    assert flipped.toggled() == state
    assert state.resized(SizeClass.LARGE).size_class is SizeClass.LARGE
    assert InstanceState.from_record(flipped.to_record()) == flipped


def test_parse_helpers_accept_loose_host_tags():
    assert parse_skin_type(" Dual_Photo ") is SkinType.DUAL_PHOTO
    assert parse_size_class("SMALL") is SizeClass.SMALL
    with pytest.raises(MomentValidationError):
        parse_skin_type("hologram")
    with pytest.raises(MomentValidationError):
        parse_size_class("xl")


def test_moment_id_is_kept_in_the_record():
    moment = Moment(photo_ref="a.jpg", moment_id="m-42")
    assert Moment.from_record(moment.to_record()).moment_id == "m-42"
    with pytest.raises(MomentValidationError):
        Moment.from_record('{"moment_id": 42}')


def test_rendered_view_fields_are_read_only():
    source = {"partner_name": "Alex"}
    view = RenderedView(instance_id=1, skin_type=SkinType.SIMPLE, fields=source)

    with pytest.raises(TypeError):
        view.fields["partner_name"] = "Sam"
    source["partner_name"] = "Sam"

    assert view.get("partner_name") == "Alex"
    assert view == RenderedView(instance_id=1, skin_type=SkinType.SIMPLE, fields={"partner_name": "Alex"})
