"""Read student roster spreadsheets into rows for `reconcile_many`.

Only parsing lives here: headers are matched loosely (case, spaces,
underscores and the usual aliases) and every cell comes back as text.
"""
import csv
import io
import re
from datetime import date, datetime
from typing import Any, Dict, List

from openpyxl import load_workbook

HEADER_ALIASES = {
    'name': ('name', 'studentname', 'fullname'),
    'email': ('email', 'emailid', 'emailaddress', 'mail'),
    'roll_number': ('rollnumber', 'rollno', 'roll', 'regno', 'registernumber'),
    'mobile': ('mobile', 'mobileno', 'mobilenumber', 'phone', 'contact'),
    'parent_contact': ('parentcontact', 'parentmobile', 'parentphone', 'guardiancontact'),
    'address': ('address',),
    'date_of_birth': ('dateofbirth', 'dob', 'birthdate'),
}

MAX_ROWS = 5000


def _to_text(v: Any) -> str:
    if v is None:
        return ''
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, float) and v.is_integer():
        # roll numbers and phone numbers typed into numeric cells
        return str(int(v))
    return str(v).strip()


def _header_key(v: Any) -> str:
    return re.sub(r'[^a-z0-9]', '', _to_text(v).lower())


def map_headers(headers) -> Dict[int, str]:
    """Column index -> canonical field name for recognised headers."""
    lookup = {alias: field for field, aliases in HEADER_ALIASES.items() for alias in aliases}
    mapping = {}
    for idx, header in enumerate(headers):
        field = lookup.get(_header_key(header))
        if field and field not in mapping.values():
            mapping[idx] = field
    return mapping


def _rows_from_table(table) -> List[Dict[str, str]]:
    rows = []
    mapping = None
    for values in table:
        values = list(values)
        if mapping is None:
            mapping = map_headers(values)
            continue
        if not any(_to_text(v) for v in values):
            continue
        row = {field: _to_text(values[idx]) if idx < len(values) else '' for idx, field in mapping.items()}
        if not row.get('date_of_birth'):
            row.pop('date_of_birth', None)
        if len(rows) >= MAX_ROWS:
            raise ValueError(f'Roster has more than {MAX_ROWS} rows; split it into smaller files')
        rows.append(row)
    return rows


def read_csv(file_obj) -> List[Dict[str, str]]:
    raw = file_obj.read() if hasattr(file_obj, 'read') else file_obj
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8-sig')
    return _rows_from_table(csv.reader(io.StringIO(raw)))


def read_xlsx(file_obj) -> List[Dict[str, str]]:
    file_bytes = file_obj.read() if hasattr(file_obj, 'read') else bytes(file_obj)
    wb = load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    try:
        if not wb.worksheets:
            return []
        return _rows_from_table(wb.worksheets[0].iter_rows(values_only=True))
    finally:
        wb.close()


def read_roster(path: str) -> List[Dict[str, str]]:
    """Dispatch on the file extension (.csv, .xlsx)."""
    lowered = path.lower()
    with open(path, 'rb') as fh:
        if lowered.endswith('.csv'):
            return read_csv(fh)
        if lowered.endswith('.xlsx'):
            return read_xlsx(fh)
    raise ValueError(f'Unsupported roster file type: {path} (expected .csv or .xlsx)')
