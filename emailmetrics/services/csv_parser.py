"""
CSV Parser & Normalizer for email platform exports.

Turns the raw text of the three canonical exports (campaigns.csv, flows.csv,
subscribers.csv) into typed records:

- CanonicalEmailEvent for every campaign row and every flow-message row
- Subscriber for every profile row with a non-empty email

Parsing is tolerant by contract. Malformed rows never abort a parse; a bad
field degrades to 0 (numbers) or None (dates) and a ParseDiagnostic records
what happened. Empty or missing text yields an empty result.

Column Matching:
Each record type is described by a table of FieldSpec entries
(canonical field, accepted header aliases in priority order, optional fallback
predicate). The first alias present in the header wins; a case-insensitive
alias match comes next; the fallback predicate scans the remaining headers last.

Date Formats (first match wins):
1. MM/DD/YYYY[ HH:MM[:SS][ AM|PM]] (also with '-') read as UTC; two-digit years
   pivot at 70 (<70 -> 20xx, else 19xx)
2. Epoch seconds (10 digits) or milliseconds (13 digits)
3. Anything pandas.to_datetime accepts that contains a digit (naive values are
   read as UTC); relative keywords such as "now" are rejected
"""

import csv
import io
import logging
import math
import re
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from emailmetrics.models import (
    CanonicalEmailEvent,
    DiagnosticLevel,
    EmailCategory,
    ParseDiagnostic,
    Subscriber,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Field kinds understood by the coercion layer
KIND_TEXT: str = 'text'
KIND_NUMBER: str = 'number'
KIND_INTEGER: str = 'integer'
KIND_DATE: str = 'date'

# Characters removed before numeric parsing
NUMERIC_STRIP_RE = re.compile(r'[$,%\s]')

US_DATE_RE = re.compile(
    r'^(\d{1,2})[/-](\d{1,2})[/-](\d{2}|\d{4})'
    r'(?:[ T]+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?)?$'
)
EPOCH_SECONDS_RE = re.compile(r'^\d{10}$')
EPOCH_MILLIS_RE = re.compile(r'^\d{13}$')

# Relative keywords like "now" and "today" carry no digits
HAS_DIGIT_RE = re.compile(r'\d')

# Two-digit years below the pivot belong to this century
TWO_DIGIT_YEAR_PIVOT: int = 70

# Flow exports may carry a preamble; the real header starts with this cell
FLOW_HEADER_FIRST_CELL: str = 'day'
FLOW_HEADER_SCAN_LINES: int = 10


# =============================================================================
# FIELD SPECIFICATIONS
# =============================================================================


def looks_like_date_header(header: str) -> bool:
    """Heuristic for send-time columns whose name matches no known alias."""
    name = header.strip().lower()
    return 'date' in name or 'send' in name or name.endswith('day')


def looks_like_created_header(header: str) -> bool:
    return 'created' in header.strip().lower()


@dataclass(frozen=True)
class FieldSpec:
    """
    How one canonical field is found and coerced.

    Attributes:
        canonical: Attribute name on the target record.
        aliases: Accepted header names, highest priority first.
        kind: One of KIND_TEXT, KIND_NUMBER, KIND_INTEGER, KIND_DATE.
        default: Value used when the column is absent or the cell is empty
            (text fields only; numbers default to 0 and dates to None).
        fallback: Predicate over header names tried when no alias matches.
    """
    canonical: str
    aliases: Tuple[str, ...]
    kind: str = KIND_INTEGER
    default: Any = None
    fallback: Optional[Callable[[str], bool]] = None


# Metrics shared by campaign and flow exports
METRIC_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec('revenue', ('Revenue', 'Total Revenue'), KIND_NUMBER),
    FieldSpec('uniqueOpens', ('Unique Opens',)),
    FieldSpec('uniqueClicks', ('Unique Clicks',)),
    FieldSpec('totalOrders', ('Total Placed Orders', 'Placed Orders', 'Unique Placed Order')),
    FieldSpec('unsubscribes', ('Unsubscribes', 'Unique Unsubscribes')),
    FieldSpec('spamComplaints', ('Spam Complaints',)),
    FieldSpec('bounces', ('Bounces', 'Bounced')),
)

CAMPAIGN_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec('name', ('Campaign Name', 'Campaign name', 'Name'), KIND_TEXT, default='Untitled'),
    FieldSpec(
        'sentAt',
        ('Send Time', 'Send Date', 'Sent At', 'Send Date (UTC)'),
        KIND_DATE,
        fallback=looks_like_date_header,
    ),
    FieldSpec('emailsSent', ('Total Recipients', 'Recipients', 'Delivered')),
) + METRIC_FIELDS

FLOW_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec('name', ('Flow Message Name', 'Flow Name', 'Message Name'), KIND_TEXT, default='Flow Email'),
    FieldSpec('sentAt', ('Day', 'Send Time', 'Date'), KIND_DATE, fallback=looks_like_date_header),
    FieldSpec('emailsSent', ('Delivered', 'Total Recipients', 'Recipients')),
) + METRIC_FIELDS

SUBSCRIBER_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec('email', ('Email', 'email', 'Email Address'), KIND_TEXT, default=''),
    FieldSpec('consentStatus', ('Email Marketing Consent', 'Consent'), KIND_TEXT, default=''),
    FieldSpec(
        'createdAt',
        ('Created At', 'Signup Date', 'Profile Created On'),
        KIND_DATE,
        fallback=looks_like_created_header,
    ),
)


# =============================================================================
# RESULT TYPE
# =============================================================================


@dataclass
class ParseResult:
    """
    Records parsed from one CSV plus the diagnostics collected on the way.

    A ParseResult is always structurally valid; callers inspect diagnostics
    to learn what was skipped or coerced.
    """
    records: List[Any] = field(default_factory=list)
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)

    @property
    def warnings(self) -> List[ParseDiagnostic]:
        return [d for d in self.diagnostics if d.level == DiagnosticLevel.WARNING]

    def __len__(self) -> int:
        return len(self.records)


def _note(
    diagnostics: List[ParseDiagnostic],
    source: str,
    field_name: str,
    message: str,
    row_number: Optional[int] = None,
    level: DiagnosticLevel = DiagnosticLevel.DEBUG,
) -> None:
    diagnostic = ParseDiagnostic(
        field=field_name,
        message=message,
        row_number=row_number,
        level=level,
    )
    diagnostics.append(diagnostic)
    where = f" row {row_number}" if row_number is not None else ""
    if level == DiagnosticLevel.WARNING:
        logger.warning(f"{source}{where}: {field_name}: {message}")
    else:
        logger.debug(f"{source}{where}: {field_name}: {message}")


# =============================================================================
# VALUE COERCION
# =============================================================================


def to_number(raw: Any) -> Tuple[float, bool]:
    """
    Coerce a cell to a finite float.

    '$', ',', '%' and whitespace are stripped first. Empty cells are a clean 0.

    Args:
        raw: Cell value (usually a string).

    Returns:
        Tuple of (value, ok). ok is False when a non-empty value could not be
        read as a finite number and 0 was substituted.

    Example:
        >>> to_number('$1,234.50')
        (1234.5, True)
        >>> to_number('n/a')
        (0.0, False)
    """
    if raw is None:
        return 0.0, True
    text = NUMERIC_STRIP_RE.sub('', str(raw))
    if not text:
        return 0.0, True
    try:
        value = float(text)
    except ValueError:
        return 0.0, False
    if not math.isfinite(value):
        return 0.0, False
    return value, True


def _expand_year(year_text: str) -> int:
    year = int(year_text)
    if len(year_text) == 2:
        return 2000 + year if year < TWO_DIGIT_YEAR_PIVOT else 1900 + year
    return year


def _parse_us_date(text: str) -> Optional[datetime]:
    match = US_DATE_RE.match(text)
    if not match:
        return None
    month, day, year_text, hour, minute, second, meridiem = match.groups()
    hour_value = int(hour) if hour else 0
    if meridiem:
        if hour_value > 12:
            return None
        hour_value = hour_value % 12 + (12 if meridiem.lower() == 'pm' else 0)
    try:
        return datetime(
            _expand_year(year_text),
            int(month),
            int(day),
            hour_value,
            int(minute) if minute else 0,
            int(second) if second else 0,
            tzinfo=timezone.utc,
        )
    except ValueError:
        return None


def _parse_epoch(text: str) -> Optional[datetime]:
    if EPOCH_SECONDS_RE.match(text):
        seconds = int(text)
    elif EPOCH_MILLIS_RE.match(text):
        seconds = int(text) / 1000.0
    else:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_generic(text: str) -> Optional[datetime]:
    if not HAS_DIGIT_RE.search(text):
        return None
    try:
        with warnings.catch_warnings():
            # pandas warns when it falls back to per-element format inference
            warnings.simplefilter('ignore', UserWarning)
            stamp = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError, pd.errors.OutOfBoundsDatetime):
        return None
    if stamp is None or pd.isna(stamp):
        return None
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize('UTC')
    else:
        stamp = stamp.tz_convert('UTC')
    return stamp.to_pydatetime()


def parse_date(raw: Any) -> Optional[datetime]:
    """
    Parse a date cell into a timezone-aware UTC datetime.

    Args:
        raw: Cell value.

    Returns:
        datetime in UTC, or None when the value is empty or matches no format.

    Example:
        >>> parse_date('01/15/24 09:30')
        datetime.datetime(2024, 1, 15, 9, 30, tzinfo=datetime.timezone.utc)
        >>> parse_date('not a date') is None
        True
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    return _parse_us_date(text) or _parse_epoch(text) or _parse_generic(text)


# =============================================================================
# RAW CSV READING
# =============================================================================


def decode_csv_bytes(data: Union[bytes, str, None]) -> str:
    """Decode downloaded CSV bytes, dropping a UTF-8 BOM when present."""
    if data is None:
        return ''
    if isinstance(data, bytes):
        return data.decode('utf-8-sig', errors='replace')
    return data.lstrip('\ufeff')


def _split_cells(line: str) -> List[str]:
    return [cell.strip() for cell in next(csv.reader([line]), [])]


def _non_blank_lines(text: str) -> List[str]:
    return [line for line in text.splitlines() if line.strip()]


def _balance_quotes(
    lines: Sequence[str],
    diagnostics: List[ParseDiagnostic],
    source: str,
) -> List[str]:
    # An unclosed quote would swallow every following line into one cell
    balanced: List[str] = []
    for number, line in enumerate(lines):
        if line.count('"') % 2:
            _note(
                diagnostics, source, 'row',
                "unbalanced quote, quotes dropped from line",
                row_number=number or None,
                level=DiagnosticLevel.WARNING,
            )
            line = line.replace('"', '')
        balanced.append(line)
    return balanced


def _find_header_index(lines: Sequence[str], first_cell: Optional[str]) -> int:
    if not first_cell:
        return 0
    for index, line in enumerate(lines[:FLOW_HEADER_SCAN_LINES]):
        cells = _split_cells(line)
        if cells and cells[0].lower() == first_cell:
            return index
    return 0


def read_csv_rows(
    text: Optional[str],
    source: str = 'csv',
    header_first_cell: Optional[str] = None,
) -> Tuple[List[str], List[Dict[str, str]], List[ParseDiagnostic]]:
    """
    Read CSV text into header names and string-valued row dicts.

    Blank lines are dropped and the first non-blank line is the header, unless
    ``header_first_cell`` is given and a line starting with that cell appears
    within the first few lines. Rows with too many cells are truncated to the
    header width; rows with too few get empty strings. A line with an odd
    number of double quotes has its quotes removed so that it reads as plain
    cells instead of absorbing the lines after it.

    Args:
        text: Raw CSV text (may be None or empty).
        source: Label used in diagnostics and logs.
        header_first_cell: Lower-cased first cell of the real header line.

    Returns:
        Tuple of (headers, rows, diagnostics).
    """
    diagnostics: List[ParseDiagnostic] = []
    lines = _non_blank_lines(decode_csv_bytes(text))
    if not lines:
        return [], [], diagnostics

    header_index = _find_header_index(lines, header_first_cell)
    if header_index:
        _note(diagnostics, source, 'header', f"skipped {header_index} preamble line(s)")
    lines = lines[header_index:]
    lines = _balance_quotes(lines, diagnostics, source)
    width = len(_split_cells(lines[0]))

    def _truncate(bad_line: List[str]) -> List[str]:
        _note(diagnostics, source, 'row', f"row had {len(bad_line)} cells, truncated to {width}")
        return bad_line[:width]

    try:
        df = pd.read_csv(
            io.StringIO('\n'.join(lines)),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine='python',
            on_bad_lines=_truncate,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        _note(diagnostics, source, 'file', f"could not read CSV: {e}", level=DiagnosticLevel.WARNING)
        return [], [], diagnostics

    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna('')
    for column in df.columns:
        df[column] = df[column].astype(str).str.strip()

    return list(df.columns), df.to_dict(orient='records'), diagnostics


# =============================================================================
# COLUMN RESOLUTION
# =============================================================================


def resolve_column(headers: Sequence[str], spec: FieldSpec) -> Optional[str]:
    """
    Pick the header column backing ``spec``.

    Priority: exact alias (alias order), case-insensitive alias (alias order),
    then the first header satisfying the fallback predicate.
    """
    present = set(headers)
    for alias in spec.aliases:
        if alias in present:
            return alias

    by_lower = {}
    for header in headers:
        by_lower.setdefault(header.lower(), header)
    for alias in spec.aliases:
        match = by_lower.get(alias.lower())
        if match is not None:
            return match

    if spec.fallback is not None:
        for header in headers:
            if spec.fallback(header):
                return header
    return None


def resolve_columns(
    headers: Sequence[str],
    fields: Sequence[FieldSpec],
    source: str,
    diagnostics: List[ParseDiagnostic],
) -> Dict[str, Optional[str]]:
    """Map every canonical field of a record type to its header (or None)."""
    mapping: Dict[str, Optional[str]] = {}
    for spec in fields:
        column = resolve_column(headers, spec)
        mapping[spec.canonical] = column
        if column is None:
            _note(diagnostics, source, spec.canonical, "no matching column, using defaults")
    return mapping


# =============================================================================
# RECORD MAPPING
# =============================================================================


def _coerce_row(
    row: Dict[str, str],
    row_number: int,
    fields: Sequence[FieldSpec],
    columns: Dict[str, Optional[str]],
    source: str,
    diagnostics: List[ParseDiagnostic],
) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for spec in fields:
        column = columns.get(spec.canonical)
        raw = row.get(column, '') if column else ''

        if spec.kind == KIND_TEXT:
            values[spec.canonical] = raw or spec.default
            continue

        if spec.kind == KIND_DATE:
            parsed = parse_date(raw)
            if parsed is None and raw:
                _note(diagnostics, source, spec.canonical, f"unparseable date {raw!r}", row_number)
            values[spec.canonical] = parsed
            continue

        number, ok = to_number(raw)
        if not ok:
            _note(
                diagnostics, source, spec.canonical,
                f"non-numeric value {raw!r} read as 0",
                row_number, DiagnosticLevel.WARNING,
            )
        if number < 0:
            _note(
                diagnostics, source, spec.canonical,
                f"negative value {raw!r} clamped to 0",
                row_number, DiagnosticLevel.WARNING,
            )
            number = 0.0
        values[spec.canonical] = int(round(number)) if spec.kind == KIND_INTEGER else number
    return values


def _parse_events(
    text: Optional[str],
    category: EmailCategory,
    fields: Sequence[FieldSpec],
    header_first_cell: Optional[str] = None,
) -> ParseResult:
    source = f"{category.value}s.csv"
    headers, rows, diagnostics = read_csv_rows(text, source, header_first_cell)
    result = ParseResult(diagnostics=diagnostics)
    if not headers:
        return result

    columns = resolve_columns(headers, fields, source, diagnostics)
    for row_number, row in enumerate(rows, start=1):
        values = _coerce_row(row, row_number, fields, columns, source, diagnostics)
        if values['sentAt'] is None:
            _note(diagnostics, source, 'sentAt', "no send time, excluded from time-based rollups", row_number)
        result.records.append(CanonicalEmailEvent(category=category, **values))

    logger.info(
        f"Parsed {len(result.records)} {category.value} rows from {source} "
        f"({len(result.warnings)} warnings)"
    )
    return result


def parse_campaigns(text: Optional[str]) -> ParseResult:
    """
    Parse campaigns.csv into campaign events.

    Args:
        text: Raw CSV text or None.

    Returns:
        ParseResult whose records are CanonicalEmailEvent(category=campaign);
        emailsSent holds the recipient count.
    """
    return _parse_events(text, EmailCategory.CAMPAIGN, CAMPAIGN_FIELDS)


def parse_flows(text: Optional[str]) -> ParseResult:
    """
    Parse flows.csv into flow events, one per flow message and day.

    Handles exports whose real header (starting with 'Day') follows a short
    preamble. emailsSent holds the delivered count.
    """
    return _parse_events(text, EmailCategory.FLOW, FLOW_FIELDS, FLOW_HEADER_FIRST_CELL)


def parse_subscribers(text: Optional[str]) -> ParseResult:
    """Parse subscribers.csv, dropping rows without an email."""
    source = 'subscribers.csv'
    headers, rows, diagnostics = read_csv_rows(text, source)
    result = ParseResult(diagnostics=diagnostics)
    if not headers:
        return result

    columns = resolve_columns(headers, SUBSCRIBER_FIELDS, source, diagnostics)
    for row_number, row in enumerate(rows, start=1):
        values = _coerce_row(row, row_number, SUBSCRIBER_FIELDS, columns, source, diagnostics)
        if not values['email']:
            _note(diagnostics, source, 'email', "empty email, row skipped", row_number)
            continue
        result.records.append(Subscriber(**values))

    logger.info(f"Parsed {len(result.records)} subscribers from {source}")
    return result
