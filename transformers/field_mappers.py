"""
Field mapping functions for converting Project Online values to Smartsheet values

Every function here is pure and total: missing or malformed input produces an
empty value, never an exception.
"""
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from config import HOURS_PER_DAY, MAX_WORKSPACE_NAME_LENGTH, MAX_SHEET_NAME_LENGTH

_ISO_DATETIME = re.compile(
    r'^(\d{4})-(\d{2})-(\d{2})'
    r'(?:[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?)?'
    r'\s*(Z|[+-]\d{2}:?\d{2})?$'
)
_ODATA_DATE = re.compile(r'^/Date\((-?\d+)([+-]\d{4})?\)/$')

_ISO_DURATION = re.compile(
    r'^(-)?P(?:(\d+(?:\.\d+)?)W)?(?:(\d+(?:\.\d+)?)D)?'
    r'(?:T(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?(?:(\d+(?:\.\d+)?)S)?)?$',
    re.IGNORECASE
)
_SHORT_DURATION = re.compile(r'^(-?\d+(?:\.\d+)?)\s*(w|d|h|m|s)?$', re.IGNORECASE)

_INVALID_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')

PRIORITY_BANDS = [
    (1000, 'Highest'),
    (800, 'Very High'),
    (600, 'Higher'),
    (500, 'Medium'),
    (400, 'Lower'),
    (200, 'Very Low'),
]
PRIORITY_OPTIONS = ['Highest', 'Very High', 'Higher', 'Medium', 'Lower', 'Very Low', 'Lowest']

STATUS_OPTIONS = ['Not Started', 'In Progress', 'Complete']

# MS Project ConstraintType enumeration
CONSTRAINT_TYPES = {
    0: 'ASAP',
    1: 'ALAP',
    2: 'MSO',
    3: 'MFO',
    4: 'SNET',
    5: 'SNLT',
    6: 'FNET',
    7: 'FNLT',
}
CONSTRAINT_NAMES = {
    'as soon as possible': 'ASAP',
    'as late as possible': 'ALAP',
    'must start on': 'MSO',
    'must finish on': 'MFO',
    'start no earlier than': 'SNET',
    'start no later than': 'SNLT',
    'finish no earlier than': 'FNET',
    'finish no later than': 'FNLT',
}
CONSTRAINT_OPTIONS = list(CONSTRAINT_TYPES.values())

# MS Project TaskLinkType enumeration
DEPENDENCY_TYPES = {
    0: 'FF',
    1: 'FS',
    2: 'SF',
    3: 'SS',
}


def _format_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return str(value)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


def convert_date(value: Any) -> str:
    """
    Convert an ISO 8601 (or OData /Date(ms)/) timestamp to YYYY-MM-DD in UTC

    Args:
        value: Timestamp string, datetime, or None

    Returns:
        Date string, or "" for missing, unparseable, or the 0001-01-01 null sentinel
    """
    if value is None:
        return ''
    if isinstance(value, datetime):
        dt = value if value.tzinfo is None else value.astimezone(timezone.utc)
        return '' if dt.year <= 1 else dt.strftime('%Y-%m-%d')

    text = str(value).strip()
    if not text:
        return ''

    odata = _ODATA_DATE.match(text)
    if odata:
        dt = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=int(odata.group(1)))
        return '' if dt.year <= 1 else dt.strftime('%Y-%m-%d')

    match = _ISO_DATETIME.match(text)
    if not match:
        return ''
    year, month, day, hour, minute, second, offset = match.groups()
    if int(year) <= 1:
        return ''
    try:
        dt = datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0), int(second or 0))
    except ValueError:
        return ''

    if offset and offset != 'Z':
        sign = -1 if offset[0] == '-' else 1
        digits = offset[1:].replace(':', '')
        shift = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        try:
            dt = dt - sign * shift
        except OverflowError:
            return ''
    return dt.strftime('%Y-%m-%d')


def parse_duration_hours(value: Any) -> Optional[float]:
    """
    Parse a duration into working hours (8 hour day, 5 day week)

    Accepts ISO 8601 durations (PT40H, P5D, P1DT8H, PT480M, PT7H30M) and
    shorthand values (4d, 32h, 480m). Bare numbers are hours.

    Returns:
        Hours as float (may be negative), or None if the value can't be parsed
        or is not finite
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _finite(float(value))
        except OverflowError:
            return None

    text = str(value).strip()
    if not text:
        return None

    iso = _ISO_DURATION.match(text)
    if iso and any(iso.groups()[1:]):
        sign, weeks, days, hours, minutes, seconds = iso.groups()
        total = (
            float(weeks or 0) * 5 * HOURS_PER_DAY
            + float(days or 0) * HOURS_PER_DAY
            + float(hours or 0)
            + float(minutes or 0) / 60
            + float(seconds or 0) / 3600
        )
        return _finite(-total if sign else total)

    short = _SHORT_DURATION.match(text)
    if short:
        amount = float(short.group(1))
        unit = (short.group(2) or 'h').lower()
        factors = {'w': 5 * HOURS_PER_DAY, 'd': HOURS_PER_DAY, 'h': 1, 'm': 1 / 60, 's': 1 / 3600}
        return _finite(amount * factors[unit])
    return None


def duration_to_decimal_days(value: Any) -> Optional[float]:
    """Duration as working days rounded to 2 places (PT40H -> 5.0)"""
    hours = parse_duration_hours(value)
    if hours is None:
        return None
    return round(hours / HOURS_PER_DAY, 2)


def format_duration_days(value: Any) -> str:
    """Duration as Smartsheet days string (PT40H -> "5d", PT4H -> "0.5d")"""
    days = duration_to_decimal_days(value)
    if days is None:
        return ''
    return f"{_format_number(days)}d"


def format_hours(value: Any) -> str:
    """Duration as hours string (PT40H -> "40h")"""
    hours = parse_duration_hours(value)
    if hours is None:
        return ''
    return f"{_format_number(round(hours, 2))}h"


def map_priority(value: Any) -> str:
    """
    Map a 0-1000 Project Online priority onto the seven-level picklist

    Returns:
        Priority label, or "" when no priority is set
    """
    if value is None or isinstance(value, bool):
        return ''
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return ''
    if math.isnan(number):
        return ''
    for threshold, label in PRIORITY_BANDS:
        if number >= threshold:
            return label
    return 'Lowest'


def derive_status(percent_complete: Any) -> str:
    """Status from % complete: 0 -> Not Started, 100 -> Complete, else In Progress"""
    try:
        percent = float(percent_complete or 0)
    except (TypeError, ValueError, OverflowError):
        percent = 0.0
    if math.isnan(percent):
        percent = 0.0
    if percent <= 0:
        return 'Not Started'
    if percent >= 100:
        return 'Complete'
    return 'In Progress'


def format_percent(value: Any) -> str:
    if value is None or value == '':
        return ''
    try:
        number = _finite(float(value))
    except (TypeError, ValueError, OverflowError):
        return ''
    return '' if number is None else f"{_format_number(number)}%"


def map_constraint_type(value: Any) -> str:
    """
    Map a constraint type (enum int, numeric string, abbreviation or full name)

    Returns:
        Abbreviation (ASAP, ALAP, MSO, MFO, SNET, SNLT, FNET, FNLT); unknown
        values map to ALAP, missing values to ""
    """
    if value is None or value == '':
        return ''
    if isinstance(value, bool):
        return 'ALAP'
    if isinstance(value, int):
        return CONSTRAINT_TYPES.get(value, 'ALAP')
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return 'ALAP'
        return CONSTRAINT_TYPES.get(int(value), 'ALAP')

    text = str(value).strip()
    if text.isdigit():
        return CONSTRAINT_TYPES.get(int(text), 'ALAP')
    if text.upper() in CONSTRAINT_OPTIONS:
        return text.upper()
    return CONSTRAINT_NAMES.get(' '.join(text.lower().split()), 'ALAP')


def convert_max_units(value: Any) -> str:
    """Max units (1.0 = 100%) as a percent string, rounded half up"""
    if value is None or value == '' or isinstance(value, bool):
        return ''
    try:
        percent = _finite(float(value) * 100)
    except (TypeError, ValueError, OverflowError):
        return ''
    return '' if percent is None else f"{_round_half_up(percent)}%"


def to_checkbox(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('true', '1', 'yes')
    return bool(value)


def create_contact(name: Optional[str] = None, email: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Contact object, or None when there is neither name nor email"""
    name = (name or '').strip()
    email = (email or '').strip()
    if not name and not email:
        return None
    contact = {}
    if name:
        contact['name'] = name
    if email:
        contact['email'] = email
    return contact


def map_dependency_type(value: Any) -> str:
    """TaskLinkType enum (0 FF, 1 FS, 2 SF, 3 SS) or string; defaults to FS"""
    if isinstance(value, str):
        text = value.strip().upper()
        if text in DEPENDENCY_TYPES.values():
            return text
        if text.isdigit():
            return DEPENDENCY_TYPES.get(int(text), 'FS')
        return 'FS'
    if isinstance(value, int) and not isinstance(value, bool):
        return DEPENDENCY_TYPES.get(value, 'FS')
    return 'FS'


def format_lag(value: Any) -> str:
    """
    Lag as a signed Smartsheet suffix

    Whole multiples of 8 hours become days, whole hours stay hours, anything
    else is expressed in minutes. Zero or missing lag returns "".

    Examples:
        PT16H -> "+2d", -PT4H -> "-4h", PT90M -> "+90m"
    """
    hours = parse_duration_hours(value)
    if not hours:
        return ''
    sign = '-' if hours < 0 else '+'
    magnitude = abs(hours)
    minutes = round(magnitude * 60)
    if minutes == 0:
        return ''
    if minutes % (HOURS_PER_DAY * 60) == 0:
        return f"{sign}{minutes // (HOURS_PER_DAY * 60)}d"
    if minutes % 60 == 0:
        return f"{sign}{minutes // 60}h"
    return f"{sign}{minutes}m"


def map_predecessors(predecessors: Iterable, task_positions: Dict[str, int],
                     resolvable: Optional[Iterable[str]] = None) -> str:
    """
    Build a Smartsheet predecessor value

    Args:
        predecessors: SourcePredecessor objects of one task
        task_positions: Task id -> 1-based position in the project's task list
        resolvable: If given, only predecessors whose task id is in this
            collection are emitted (the rest are dropped)

    Returns:
        Comma-joined entries such as "1FS,3SS+2d", or "" when nothing maps
    """
    allowed = set(resolvable) if resolvable is not None else None
    entries: List[str] = []
    for predecessor in predecessors or []:
        task_id = predecessor.predecessor_task_id
        position = task_positions.get(task_id)
        if position is None:
            continue
        if allowed is not None and task_id not in allowed:
            continue
        entries.append(f"{position}{map_dependency_type(predecessor.dependency_type)}"
                       f"{format_lag(predecessor.lag)}")
    return ','.join(entries)


def sanitize_workspace_name(project_name: str) -> str:
    """
    Make a project name usable as a workspace name

    Invalid characters (/\\:*?"<>|) become dashes, runs of dashes collapse,
    leading/trailing spaces and dashes are trimmed, and long names are
    truncated with "...".
    """
    sanitized = _INVALID_NAME_CHARS.sub('-', project_name or '')
    sanitized = re.sub(r'-+', '-', sanitized)
    sanitized = sanitized.strip().strip('-').strip()
    if len(sanitized) > MAX_WORKSPACE_NAME_LENGTH:
        sanitized = sanitized[:MAX_WORKSPACE_NAME_LENGTH - 3] + '...'
    return sanitized


def create_sheet_name(workspace_name: str, suffix: str) -> str:
    """Sheet name "<workspace> - <suffix>", shortening the workspace part to fit"""
    tail = f" - {suffix}"
    room = MAX_SHEET_NAME_LENGTH - len(tail)
    base = workspace_name
    if len(base) > room:
        base = base[:max(room - 3, 0)].rstrip() + '...'
    return f"{base}{tail}"
