import pytest

from dashboard.app.core.errors import FormValidationError
from dashboard.app.services.timewindow import normalize, normalize_hours


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10am", "10:00"),
        ("10:30 PM", "22:30"),
        ("22:15", "22:15"),
        ("22", "22:00"),
        ("10 A.M.", "10:00"),
        ("12am", "00:00"),
        ("12 pm", "12:00"),
        ("9:05", "09:05"),
        ("0", "00:00"),
    ],
)
def test_normalize_accepts_common_forms(raw, expected):
    result = normalize(raw)
    assert result == expected
    assert normalize(result) == result


@pytest.mark.parametrize("raw", ["abc", "25:99", "24", "13pm", "0am", "10:60", "1030", "10:3", "noon", "-1"])
def test_normalize_rejects_malformed(raw):
    assert normalize(raw) is None


def test_empty_means_unset_not_failure():
    assert normalize("") == ""
    assert normalize("   ") == ""


def test_non_string_input_is_a_failure():
    assert normalize(None) is None
    assert normalize(10) is None


def test_normalize_hours_rejects_whole_form_and_reports_every_field():
    form = {
        "mondayOpen": "9am",
        "mondayClose": "25:99",
        "tuesdayOpen": "abc",
        "tuesdayClose": "10pm",
    }

    with pytest.raises(FormValidationError) as excinfo:
        normalize_hours(form)

    bad = {(error.field, error.value) for error in excinfo.value.errors}
    assert bad == {("mondayClose", "25:99"), ("tuesdayOpen", "abc")}


def test_normalize_hours_closed_days_and_half_set_days():
    hours = normalize_hours({"mondayOpen": "10 a.m.", "mondayClose": "9:30pm"})
    assert hours["mondayOpen"] == "10:00"
    assert hours["mondayClose"] == "21:30"
    assert hours["sundayOpen"] == "" and hours["sundayClose"] == ""

    with pytest.raises(FormValidationError) as excinfo:
        normalize_hours({"fridayOpen": "5pm", "fridayClose": ""})
    assert [error.field for error in excinfo.value.errors] == ["fridayClose"]
