"""
Spreadsheet Import/Export
Maps between lead rows and spreadsheet/CSV rows in both directions.

Import accepts the human column names used by our own exports
("Customer Name") and the machine field names ("customer_name"); the
human name is checked first. Export writes a fixed column order.
"""
import csv
import io
import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

import pandas as pd
from openpyxl import Workbook

from leadflow.domain.errors import ParseError
from leadflow.domain.models.lead import (
    IDENTITY_FIELDS,
    DealStatus,
    InterestLevel,
    Lead,
    LeadFields,
    PropertyType,
)

logger = logging.getLogger(__name__)

RawRow = Dict[str, Any]

SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".csv")

# Day 25569 of the spreadsheet calendar is 1970-01-01
SPREADSHEET_EPOCH_SERIAL = 25569
UNIX_EPOCH = datetime(1970, 1, 1)

TRUTHY_SITE_VISIT = {"Yes", "TRUE", "true"}

# (field, human column) in export order; the machine alias is the field name
LEAD_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("customer_name", "Customer Name"),
    ("email", "Email"),
    ("mobile_number", "Mobile"),
    ("project_name", "Project"),
    ("budget", "Budget"),
    ("preferred_area", "Area"),
    ("team_leader", "Team Leader"),
    ("assigned_to", "Assigned To"),
    ("last_contacted_date", "Last Contacted"),
    ("next_followup_date", "Next Followup"),
    ("deal_status", "Status"),
    ("interest_level", "Interest"),
    ("property_type", "Property Type"),
    ("site_visit_done", "Site Visit"),
    ("comments", "Comments"),
)

HEADER_ALIASES: Dict[str, Tuple[str, str]] = {
    field_name: (human, field_name) for field_name, human in LEAD_COLUMNS
}

EXPORT_HEADERS: List[str] = [human for _, human in LEAD_COLUMNS]

REPORT_LEAD_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("customer_name", "Customer Name"),
    ("email", "Email"),
    ("mobile_number", "Mobile"),
    ("project_name", "Project"),
    ("budget", "Budget"),
    ("preferred_area", "Area"),
    ("assigned_to", "Assigned To"),
    ("deal_status", "Status"),
    ("interest_level", "Interest Level"),
)


@dataclass
class SheetSpec:
    """One worksheet of an exported workbook"""
    title: str
    headers: List[str]
    rows: List[Dict[str, Any]]


@dataclass
class MappedRows:
    """Result of mapping raw rows to lead fields"""
    leads: List[LeadFields]
    dropped: int


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def check_extension(filename: Optional[str]) -> str:
    name = (filename or "").lower()
    for ext in SUPPORTED_EXTENSIONS:
        if name.endswith(ext):
            return ext
    raise ParseError("Only .xlsx, .xls or .csv files are supported")


def parse_spreadsheet(data: bytes, filename: Optional[str] = None) -> List[RawRow]:
    """
    Read the first sheet of a spreadsheet (or a CSV file) into rows keyed
    by column header. Empty cells come back as None.
    
    Raises:
        ParseError: If the file cannot be read or has no rows
    """
    if not data:
        raise ParseError("The uploaded file is empty")
    
    ext = check_extension(filename) if filename else ".xlsx"
    try:
        if ext == ".csv":
            df = pd.read_csv(io.BytesIO(data), dtype=object)
        else:
            df = pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=object)
    except Exception as e:
        logger.warning(f"Could not parse {filename or 'spreadsheet'}: {e}")
        raise ParseError(f"There was a problem parsing the file: {str(e)}")
    
    df = df.dropna(how="all")
    if df.empty:
        raise ParseError("No rows found in the file")
    
    df.columns = [str(column).strip() for column in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return value is pd.NaT


def lookup(row: RawRow, field_name: str) -> Any:
    """Cell for field_name, trying the human header before the machine one"""
    for header in HEADER_ALIASES[field_name]:
        if header in row and not _is_missing(row[header]):
            return row[header]
    return None


def as_text(value: Any) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def as_budget(value: Any) -> float:
    """Non-negative budget; anything unreadable becomes 0"""
    if _is_missing(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = re.sub(r"[^\d.\-eE]", "", str(value))
        try:
            amount = float(cleaned)
        except ValueError:
            return 0.0
    if math.isnan(amount) or amount < 0:
        return 0.0
    return amount


def serial_to_date(serial: float) -> date:
    """Convert a spreadsheet day serial to a calendar date"""
    seconds = (serial - SPREADSHEET_EPOCH_SERIAL) * 86400
    return (UNIX_EPOCH + timedelta(seconds=seconds)).date()


def as_date(value: Any) -> Optional[date]:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        try:
            return serial_to_date(float(value))
        except (OverflowError, ValueError):
            return None
    
    text = str(value).strip()
    try:
        return serial_to_date(float(text))
    except (OverflowError, ValueError):
        pass
    for fmt in ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def as_choice(value: Any, enum_type: Type[Enum], default: Enum) -> Enum:
    """Match an enum by value, ignoring case; fall back to default"""
    text = as_text(value).lower()
    for member in enum_type:
        if member.value.lower() == text:
            return member
    return default


def as_site_visit(value: Any) -> bool:
    return value is True or (isinstance(value, str) and value.strip() in TRUTHY_SITE_VISIT)


def map_row(row: RawRow) -> LeadFields:
    """
    Map one raw spreadsheet row to lead fields.
    
    Never raises: unknown or missing columns take their defaults.
    """
    return LeadFields(
        customer_name=as_text(lookup(row, "customer_name")),
        email=as_text(lookup(row, "email")),
        mobile_number=as_text(lookup(row, "mobile_number")),
        project_name=as_text(lookup(row, "project_name")),
        budget=as_budget(lookup(row, "budget")),
        preferred_area=as_text(lookup(row, "preferred_area")),
        team_leader=as_text(lookup(row, "team_leader")),
        assigned_to=as_text(lookup(row, "assigned_to")),
        last_contacted_date=as_date(lookup(row, "last_contacted_date")),
        next_followup_date=as_date(lookup(row, "next_followup_date")),
        comments=as_text(lookup(row, "comments")),
        deal_status=as_choice(lookup(row, "deal_status"), DealStatus, DealStatus.NOT_CONTACTED),
        interest_level=as_choice(lookup(row, "interest_level"), InterestLevel, InterestLevel.YELLOW),
        property_type=as_choice(lookup(row, "property_type"), PropertyType, PropertyType.APARTMENT),
        site_visit_done=as_site_visit(lookup(row, "site_visit_done")),
    )


def map_rows(rows: Sequence[RawRow]) -> MappedRows:
    """Map rows, dropping those without a customer name or email"""
    leads = []
    dropped = 0
    for row in rows:
        fields = map_row(row)
        if fields.missing_fields(IDENTITY_FIELDS):
            dropped += 1
            continue
        leads.append(fields)
    return MappedRows(leads=leads, dropped=dropped)


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------

def format_currency(amount: float, symbol: str = "₹") -> str:
    """Human-facing budget, e.g. 1500000 -> ₹1,500,000"""
    if float(amount).is_integer():
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"


def _cell(lead: Lead, field_name: str, human: bool, currency_symbol: str) -> Any:
    value = getattr(lead, field_name)
    if field_name == "budget":
        if human:
            return format_currency(value, currency_symbol)
        return int(value) if float(value).is_integer() else value
    if field_name == "site_visit_done":
        return "Yes" if value else "No"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return "" if value is None else value


def export_rows(
    leads: Sequence[Lead],
    human: bool = False,
    columns: Sequence[Tuple[str, str]] = LEAD_COLUMNS,
    currency_symbol: str = "₹",
) -> List[Dict[str, Any]]:
    """
    One row per lead in fixed column order.
    
    Args:
        leads: Leads to export
        human: Render budgets as currency instead of plain numbers
        columns: (field, header) pairs to include
        currency_symbol: Glyph prefixed to human-facing budgets
    """
    return [
        {header: _cell(lead, field_name, human, currency_symbol) for field_name, header in columns}
        for lead in leads
    ]


def build_workbook(sheets: Sequence[SheetSpec]) -> bytes:
    """Write sheets to an .xlsx file in memory"""
    wb = Workbook()
    wb.remove(wb.active)
    
    for spec in sheets:
        ws = wb.create_sheet(title=spec.title[:31])
        ws.append(spec.headers)
        for row in spec.rows:
            ws.append([row.get(header) for header in spec.headers])
    
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def to_xlsx(
    leads: Sequence[Lead],
    sheet_name: str = "Leads",
    human: bool = False,
    currency_symbol: str = "₹",
) -> bytes:
    rows = export_rows(leads, human=human, currency_symbol=currency_symbol)
    return build_workbook([SheetSpec(sheet_name, list(EXPORT_HEADERS), rows)])


def to_csv(leads: Sequence[Lead], human: bool = False, currency_symbol: str = "₹") -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_HEADERS)
    writer.writeheader()
    writer.writerows(export_rows(leads, human=human, currency_symbol=currency_symbol))
    return buffer.getvalue()


def summary_sheet(title: str, rows: Sequence[Any]) -> SheetSpec:
    """Sheet from a list of pydantic chart rows"""
    dumped = [row.model_dump() for row in rows]
    headers = list(dumped[0].keys()) if dumped else ["name", "value"]
    return SheetSpec(title, headers, dumped)


def export_filename(prefix: str, extension: str, today: Optional[date] = None) -> str:
    """e.g. Leads_2024-05-10.xlsx"""
    today = today or date.today()
    return f"{prefix}_{today.isoformat()}.{extension.lstrip('.')}"
