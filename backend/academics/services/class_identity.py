"""Class identity helpers.

A class is identified by (batch, year, semester, section). The ledger keys
classes with `class_key` (numeric semester) and student enrollments key them
with `class_id` (semester label, e.g. 'Sem 3'). Both are built here so every
caller produces the same strings.

This module must stay free of model imports; `academics.models` imports it.
"""
import re
from typing import Dict, Optional

BATCH_PATTERN = r'^\d{4}-\d{4}$'
EMAIL_PATTERN = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'

YEARS = ('1st Year', '2nd Year', '3rd Year', '4th Year')
SECTIONS = ('A', 'B', 'C')
SEMESTERS = tuple(range(1, 9))
SEMESTER_NAMES = tuple(f'Sem {n}' for n in SEMESTERS)

YEAR_ORDER = {name: idx for idx, name in enumerate(YEARS, start=1)}
SEMESTER_ORDER = {name: idx for idx, name in enumerate(SEMESTER_NAMES, start=1)}

KEY_SEPARATOR = '|'

_batch_re = re.compile(BATCH_PATTERN)
_email_re = re.compile(EMAIL_PATTERN)


def _ordinal(num: int) -> str:
    if num % 10 == 1 and num % 100 != 11:
        return f'{num}st'
    if num % 10 == 2 and num % 100 != 12:
        return f'{num}nd'
    if num % 10 == 3 and num % 100 != 13:
        return f'{num}rd'
    return f'{num}th'


def normalize_batch(batch) -> str:
    """'2022_2026' -> '2022-2026'; a lone start year gets a four year span."""
    if batch is None:
        return ''
    value = str(batch).strip()
    if re.fullmatch(r'\d{4}_\d{4}', value):
        return value.replace('_', '-')
    if re.fullmatch(r'\d{4}', value):
        start = int(value)
        return f'{start}-{start + 4}'
    return value


def normalize_year(year) -> str:
    """'2', '2nd' and '2nd  year' all become '2nd Year'."""
    if year is None:
        return ''
    value = re.sub(r'\s+', ' ', str(year).strip())
    if re.fullmatch(r'\d+', value):
        return f'{_ordinal(int(value))} Year'
    m = re.fullmatch(r'(\d+)(st|nd|rd|th)( year)?', value, flags=re.IGNORECASE)
    if m:
        return f'{_ordinal(int(m.group(1)))} Year'
    return value


def normalize_semester_name(semester) -> str:
    """3, '3' and 'sem3' become 'Sem 3'."""
    if semester is None:
        return ''
    value = str(semester).strip()
    if re.fullmatch(r'\d+', value):
        return f'Sem {int(value)}'
    m = re.fullmatch(r'sem(?:ester)?\s*(\d+)', value, flags=re.IGNORECASE)
    if m:
        return f'Sem {int(m.group(1))}'
    return value


def semester_number(semester) -> Optional[int]:
    """Numeric semester from 3, '3' or 'Sem 3'; None when unparseable."""
    label = normalize_semester_name(semester)
    m = re.fullmatch(r'Sem (\d+)', label)
    return int(m.group(1)) if m else None


def normalize_section(section) -> str:
    if section is None:
        return ''
    return str(section).strip().upper()


def is_valid_batch(batch) -> bool:
    return bool(batch) and bool(_batch_re.match(str(batch)))


def is_valid_email(email) -> bool:
    return bool(email) and bool(_email_re.match(str(email).strip()))


def class_key(batch, year, semester, section) -> str:
    return KEY_SEPARATOR.join([str(batch), str(year), str(semester), str(section)])


def class_id(batch, year, semester_name, section) -> str:
    return KEY_SEPARATOR.join([str(batch), str(year), str(semester_name), str(section)])


def parse_class_id(value: str) -> Optional[Dict[str, str]]:
    parts = (value or '').split(KEY_SEPARATOR)
    if len(parts) != 4:
        return None
    batch, year, semester_name, section = parts
    return {'batch': batch, 'year': year, 'semester_name': semester_name, 'section': section}


def class_display(batch, year, semester, section) -> str:
    return f'{batch} | {year} | Sem {semester} | Sec {section}'


def validate_class_fields(batch, year, semester, section) -> Dict[str, str]:
    """Return field -> message for every invalid class component."""
    errors = {}
    if not is_valid_batch(batch):
        errors['batch'] = 'Batch must be in format YYYY-YYYY (e.g., 2022-2026)'
    if year not in YEARS:
        errors['year'] = 'Year must be one of: ' + ', '.join(YEARS)
    try:
        sem = int(semester)
    except (TypeError, ValueError):
        sem = None
    if sem is None or sem not in SEMESTERS or str(semester).strip() != str(sem):
        errors['semester'] = 'Semester must be between 1 and 8'
    if section not in SECTIONS:
        errors['section'] = 'Section must be one of: ' + ', '.join(SECTIONS)
    return errors


def history_sort_key(year, semester_name):
    # unknown labels sort last
    return (YEAR_ORDER.get(year, len(YEARS) + 1), SEMESTER_ORDER.get(semester_name, len(SEMESTER_NAMES) + 1))
