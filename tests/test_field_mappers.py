import pytest

from models import SourcePredecessor
from transformers.field_mappers import (
    PRIORITY_OPTIONS, convert_date, convert_max_units, create_contact, create_sheet_name, derive_status,
    duration_to_decimal_days, format_duration_days, format_hours, format_lag, format_percent,
    map_constraint_type, map_dependency_type, map_predecessors, map_priority, parse_duration_hours,
    sanitize_workspace_name
)


class TestDates:
    def test_null_sentinel_is_empty(self):
        assert convert_date("0001-01-01T00:00:00") == ''

    @pytest.mark.parametrize("value,expected", [
        ("2024-03-15T08:00:00", "2024-03-15"),
        ("2024-03-15T23:30:00-05:00", "2024-03-16"),
        ("2024-03-15T01:00:00+02:00", "2024-03-14"),
        ("2024-03-15T08:00:00Z", "2024-03-15"),
        ("2024-03-15", "2024-03-15"),
        ("/Date(1710460800000)/", "2024-03-15"),
    ])
    def test_iso_and_odata(self, value, expected):
        assert convert_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "not a date", "2024-13-45T00:00:00"])
    def test_bad_values_are_empty(self, value):
        assert convert_date(value) == ''


class TestDurations:
    @pytest.mark.parametrize("value,hours", [
        ("PT40H", 40), ("P5D", 40), ("P1DT8H", 16), ("PT480M", 8), ("PT7H30M", 7.5),
        ("P1W", 40), ("4d", 32), ("32h", 32), ("480m", 8), ("-PT4H", -4), (12, 12),
    ])
    def test_parse(self, value, hours):
        assert parse_duration_hours(value) == pytest.approx(hours)

    @pytest.mark.parametrize("value", [None, "", "soon", "P", True])
    def test_unparseable(self, value):
        assert parse_duration_hours(value) is None

    def test_days_and_hours(self):
        assert format_duration_days("PT40H") == "5d"
        assert format_duration_days("PT4H") == "0.5d"
        assert format_duration_days(None) == ''
        assert duration_to_decimal_days("PT10H") == 1.25
        assert format_hours("P5D") == "40h"
        assert format_hours("PT90M") == "1.5h"


def test_priority_is_total_and_monotonic():
    ranks = {label: index for index, label in enumerate(reversed(PRIORITY_OPTIONS))}
    previous = -1
    for value in range(0, 1001):
        label = map_priority(value)
        assert label in PRIORITY_OPTIONS
        assert ranks[label] >= previous
        previous = ranks[label]


@pytest.mark.parametrize("value,label", [
    (1000, 'Highest'), (800, 'Very High'), (799, 'Higher'), (600, 'Higher'), (500, 'Medium'),
    (400, 'Lower'), (200, 'Very Low'), (199, 'Lowest'), (0, 'Lowest'), ("650", 'Higher'),
])
def test_priority_bands(value, label):
    assert map_priority(value) == label


def test_priority_missing():
    assert map_priority(None) == ''
    assert map_priority('high') == ''


def test_status():
    assert derive_status(0) == 'Not Started'
    assert derive_status(None) == 'Not Started'
    assert derive_status(35) == 'In Progress'
    assert derive_status(100) == 'Complete'


@pytest.mark.parametrize("value,expected", [
    (0, 'ASAP'), (1, 'ALAP'), (2, 'MSO'), (3, 'MFO'), (4, 'SNET'), (5, 'SNLT'), (6, 'FNET'), (7, 'FNLT'),
    ("4", 'SNET'), ("fnlt", 'FNLT'), ("Start No Earlier Than", 'SNET'), (42, 'ALAP'), ("whenever", 'ALAP'),
    (None, ''), ('', ''),
])
def test_constraint_types(value, expected):
    assert map_constraint_type(value) == expected


def test_max_units_rounds_half_up():
    assert convert_max_units(1.0) == "100%"
    assert convert_max_units(0.125) == "13%"
    assert convert_max_units(0.5) == "50%"
    assert convert_max_units(None) == ''


def test_percent():
    assert format_percent(50) == "50%"
    assert format_percent(12.5) == "12.5%"
    assert format_percent(None) == ''


NON_FINITE = [float('nan'), float('inf'), float('-inf')]


@pytest.mark.parametrize("value", NON_FINITE + [10 ** 400])
def test_non_finite_numbers_do_not_raise(value):
    assert map_constraint_type(value) == 'ALAP'
    assert convert_max_units(value) == ''
    assert format_percent(value) == ''
    assert format_lag(value) == ''
    assert format_duration_days(value) == ''
    assert format_hours(value) == ''
    assert parse_duration_hours(value) is None


@pytest.mark.parametrize("value", ['NaN', 'inf', '-Infinity'])
def test_non_finite_strings_are_empty(value):
    assert convert_max_units(value) == ''
    assert format_percent(value) == ''
    assert map_constraint_type(value) == 'ALAP'


def test_nan_priority_and_status():
    assert map_priority(float('nan')) == ''
    assert derive_status(float('nan')) == 'Not Started'
    assert map_constraint_type(4.0) == 'SNET'
    assert map_constraint_type(4.5) == 'ALAP'


def test_contact():
    assert create_contact("Alice", "alice@example.com") == {'name': 'Alice', 'email': 'alice@example.com'}
    assert create_contact(None, "bob@example.com") == {'email': 'bob@example.com'}
    assert create_contact(" ", None) is None


class TestPredecessors:
    def test_positional_finish_to_start(self):
        positions = {'A': 1, 'B': 2, 'C': 3}
        assert map_predecessors([SourcePredecessor('A', 1)], positions) == "1FS"

    def test_types_and_lags(self):
        positions = {'A': 1, 'B': 2, 'C': 3}
        predecessors = [
            SourcePredecessor('A', 3, 'PT16H'),
            SourcePredecessor('B', 0, '-PT4H'),
            SourcePredecessor('C', 'SF', 'PT90M'),
        ]
        assert map_predecessors(predecessors, positions) == "1SS+2d,2FF-4h,3SF+90m"

    def test_unknown_and_unresolvable_are_dropped(self):
        positions = {'A': 1, 'B': 2}
        predecessors = [SourcePredecessor('A', 1), SourcePredecessor('B', 1), SourcePredecessor('Z', 1)]
        assert map_predecessors(predecessors, positions, resolvable={'B'}) == "2FS"
        assert map_predecessors([], positions) == ''

    def test_dependency_type_defaults_to_finish_to_start(self):
        assert map_dependency_type(None) == 'FS'
        assert map_dependency_type(9) == 'FS'
        assert map_dependency_type('ss') == 'SS'

    def test_zero_lag_is_omitted(self):
        assert format_lag('PT0H') == ''
        assert format_lag(None) == ''
        assert format_lag('P1D') == '+1d'


def test_sanitize_workspace_name():
    assert sanitize_workspace_name('R&D: Phase 1/2 <draft>') == 'R&D- Phase 1-2 -draft'
    assert sanitize_workspace_name('--Plan--') == 'Plan'
    long_name = sanitize_workspace_name('x' * 150)
    assert len(long_name) == 100 and long_name.endswith('...')


def test_sheet_name_fits():
    assert create_sheet_name('Data Center Build', 'Tasks') == 'Data Center Build - Tasks'
    name = create_sheet_name('A very long workspace name that keeps on going', 'Resources')
    assert len(name) <= 50
    assert name.endswith('... - Resources')
