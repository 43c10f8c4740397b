"""
Submission normalizer: turns raw CSV rows with arbitrary headers and
inconsistent boolean encodings into canonical business or report rows.

Two row shapes are accepted:

* business rows (one bank account of a business, with default/main flags),
  used by the admin import and by bulk submissions that describe businesses;
* report rows (routing, last4, holder name, tags, notes, default balance),
  produced by the customer report uploader.

Malformed rows are dropped with a warning. A batch fails only when its
required columns cannot be mapped or when no valid rows remain.
"""

import csv
import io
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .banks import PLACEHOLDER
from .schema import ALL_TAGS, BusinessRow, ReportRow
from ..util.logging import logger


TRUE_VALUES = {"true", "yes", "1", "t", "y"}

FORMAT_BUSINESS = "business"
FORMAT_REPORT = "report"

REQUIRED_REPORT_FIELDS = ["routingNumber", "accountNumberLast4", "accountHolderName"]

REQUIRED_BUSINESS_FIELDS = ["bankAccountRouting", "bankAccountNumber"]

# Normalized header -> business row field
BUSINESS_HEADERS = {
    "businessname": "businessName",
    "ownername": "ownerName",
    "bankname": "bankName",
    "bankaccountname": "bankAccountName",
    "bankaccountrouting": "bankAccountRouting",
    "bankaccountnumber": "bankAccountNumber",
    "bankaccounttype": "bankAccountType",
    "ismainaccount": "isMainAccount",
    "isdefaultaccount": "isDefaultAccount",
}

MASK_PREFIX = "****"
MISSING_LAST4 = "0000"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class MappingError(Exception):
    """Required fields are not mapped to CSV columns."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Please map all required fields before uploading (missing: {', '.join(missing)})")


class UploadValidationError(Exception):
    """No valid rows remained after normalization."""
    pass


def is_true_value(value: Any) -> bool:
    """Uniform boolean parsing for spreadsheet flags."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return False


def account_last4(account_number: Optional[str]) -> str:
    """Last four characters of an account number, masked or not."""
    if not account_number:
        return MISSING_LAST4
    account_number = account_number.strip()
    if account_number.startswith(MASK_PREFIX):
        account_number = account_number[len(MASK_PREFIX):]
    if account_number == PLACEHOLDER or len(account_number) < 4:
        return MISSING_LAST4
    return account_number[-4:]


def has_usable_routing(routing_number: Optional[str]) -> bool:
    return bool(routing_number) and routing_number.strip() != PLACEHOLDER


def parse_tags(cell: Any) -> List[str]:
    """Split a comma separated tag cell, keeping known tags in first-seen order."""
    if isinstance(cell, (list, tuple)):
        raw = [str(t) for t in cell]
    elif isinstance(cell, str):
        raw = cell.split(",")
    else:
        return []

    tags = []
    for tag in raw:
        tag = tag.strip().lower().replace(" ", "_")
        if tag in ALL_TAGS and tag not in tags:
            tags.append(tag)
    return tags


def normalize_header(header: str) -> str:
    return _NON_ALNUM.sub("", header.lower())


def _cell(row: Dict[str, Any], column: Optional[str]) -> str:
    if not column:
        return ""
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


# --- CSV text -----------------------------------------------------------------

def parse_csv_text(text: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Split delimited text with a header row into string-keyed rows.

    Quoted fields may span lines. Blank rows are skipped and rows that
    cannot be parsed are dropped.
    """
    reader = csv.reader(io.StringIO(text, newline=""), skipinitialspace=True)

    headers = None
    rows = []
    while True:
        try:
            values = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            if headers is None:
                raise UploadValidationError(f"Error parsing CSV header: {e}") from e
            logger.warning(f"Dropping unparseable CSV line {reader.line_num}: {e}")
            continue

        if not any(v.strip() for v in values):
            continue
        if headers is None:
            headers = [h.replace('"', '').strip() for h in values]
            continue
        rows.append({header: (values[i].strip() if i < len(values) else "") for i, header in enumerate(headers)})

    if headers is None or not rows:
        raise UploadValidationError("CSV file must contain at least a header row and one data row")
    return headers, rows


def detect_format(headers: Iterable[str]) -> str:
    """Business format when the business routing/number columns are present."""
    normalized = {normalize_header(h) for h in headers}
    if "bankaccountrouting" in normalized and "bankaccountnumber" in normalized:
        return FORMAT_BUSINESS
    return FORMAT_REPORT


def mapping_format(mapping: Dict[str, str]) -> str:
    """Format implied by an explicit mapping: business when it targets business account columns."""
    if any(mapping.get(field) for field in REQUIRED_BUSINESS_FIELDS):
        return FORMAT_BUSINESS
    return FORMAT_REPORT


# --- report rows ----------------------------------------------------------------

def detect_report_mapping(headers: Iterable[str]) -> Dict[str, str]:
    """Auto-map CSV headers onto report fields by substring matching."""
    mapping: Dict[str, str] = {}

    for header in headers:
        header_lower = re.sub(r"\s+", "", header.lower())

        if "routing" in header_lower:
            mapping["routingNumber"] = header
        elif "accountnumber" in header_lower or ("account" in header_lower and "last4" in header_lower):
            mapping["accountNumberLast4"] = header
        elif "accountholder" in header_lower or "name" in header_lower:
            mapping["accountHolderName"] = header
        elif "tag" in header_lower:
            mapping["tags"] = header
        elif "note" in header_lower:
            mapping["notes"] = header
        elif "default" in header_lower and ("balance" in header_lower or "amount" in header_lower):
            mapping["defaultBalance"] = header

    return mapping


def validate_mapping(mapping: Dict[str, str], required: List[str] = None) -> None:
    if required is None:
        required = REQUIRED_REPORT_FIELDS
    missing = [f for f in required if not mapping.get(f)]
    if missing:
        logger.log_validation_error("upload.mapping", missing)
        raise MappingError(missing)


def normalize_report_row(row: Dict[str, Any], mapping: Dict[str, str]) -> Optional[ReportRow]:
    """Map one raw row; None when a required value is missing."""
    routing = _cell(row, mapping.get("routingNumber"))
    account = _cell(row, mapping.get("accountNumberLast4"))
    holder = _cell(row, mapping.get("accountHolderName"))

    if not routing or not account or not holder:
        return None
    if not has_usable_routing(routing):
        return None

    digits = account[len(MASK_PREFIX):] if account.startswith(MASK_PREFIX) else account
    if digits == PLACEHOLDER or len(digits) < 4:
        return None
    last4 = account_last4(account)

    notes = _cell(row, mapping.get("notes")) or None
    balance = _cell(row, mapping.get("defaultBalance")) or None

    return ReportRow(
        routing_number=routing,
        account_number_last4=last4,
        account_holder_name=holder,
        tags=parse_tags(row.get(mapping["tags"])) if mapping.get("tags") else [],
        notes=notes,
        default_balance=balance,
    )


def normalize_report_rows(rows: List[Dict[str, Any]], mapping: Optional[Dict[str, str]] = None) -> List[ReportRow]:
    if mapping is None:
        headers = list(rows[0].keys()) if rows else []
        mapping = detect_report_mapping(headers)
    validate_mapping(mapping, REQUIRED_REPORT_FIELDS)

    normalized = []
    for index, row in enumerate(rows):
        report = normalize_report_row(row, mapping)
        if report is None:
            logger.warning(f"Dropping report row {index + 1}: missing required values")
            continue
        normalized.append(report)

    if not normalized:
        raise UploadValidationError("No valid data found after mapping. Please check your field mappings.")
    return normalized


# --- business rows --------------------------------------------------------------

def detect_business_mapping(headers: Iterable[str]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for header in headers:
        canonical = BUSINESS_HEADERS.get(normalize_header(header))
        if canonical:
            mapping[canonical] = header
    return mapping


def normalize_business_row(row: Dict[str, Any], mapping: Optional[Dict[str, str]] = None) -> Optional[BusinessRow]:
    """Map one raw row onto the canonical business record; None if empty."""
    if mapping is None:
        mapping = detect_business_mapping(row.keys())

    if not any(str(v).strip() for v in row.values() if v is not None):
        return None

    def flag(name):
        column = mapping.get(name)
        return is_true_value(row.get(column)) if column else False

    return BusinessRow(
        business_name=_cell(row, mapping.get("businessName")),
        owner_name=_cell(row, mapping.get("ownerName")),
        bank_name=_cell(row, mapping.get("bankName")),
        bank_account_name=_cell(row, mapping.get("bankAccountName")),
        bank_account_routing=_cell(row, mapping.get("bankAccountRouting")),
        bank_account_number=_cell(row, mapping.get("bankAccountNumber")),
        bank_account_type=_cell(row, mapping.get("bankAccountType")),
        is_main_account=flag("isMainAccount"),
        is_default_account=flag("isDefaultAccount"),
    )


def normalize_business_rows(rows: List[Dict[str, Any]], mapping: Optional[Dict[str, str]] = None) -> List[BusinessRow]:
    if mapping is None:
        headers = list(rows[0].keys()) if rows else []
        mapping = detect_business_mapping(headers)
    validate_mapping(mapping, REQUIRED_BUSINESS_FIELDS)

    normalized = []
    for index, row in enumerate(rows):
        business = normalize_business_row(row, mapping)
        if business is None:
            logger.warning(f"Dropping business row {index + 1}: empty row")
            continue
        normalized.append(business)

    if not normalized:
        raise UploadValidationError("No valid business rows found in upload")
    return normalized


def business_row_from_dict(data: Dict[str, Any]) -> BusinessRow:
    """Rebuild a business row stored in a pending upload."""
    return BusinessRow(
        business_name=str(data.get("businessName") or ""),
        owner_name=str(data.get("ownerName") or ""),
        bank_name=str(data.get("bankName") or ""),
        bank_account_name=str(data.get("bankAccountName") or ""),
        bank_account_routing=str(data.get("bankAccountRouting") or ""),
        bank_account_number=str(data.get("bankAccountNumber") or ""),
        bank_account_type=str(data.get("bankAccountType") or ""),
        is_main_account=is_true_value(data.get("isMainAccount")),
        is_default_account=is_true_value(data.get("isDefaultAccount")),
    )


def report_row_from_dict(data: Dict[str, Any]) -> ReportRow:
    """Rebuild a report row stored in a pending upload."""
    return ReportRow(
        routing_number=str(data.get("routingNumber") or ""),
        account_number_last4=str(data.get("accountNumberLast4") or ""),
        account_holder_name=str(data.get("accountHolderName") or ""),
        tags=parse_tags(data.get("tags")),
        notes=data.get("notes") or None,
        default_balance=data.get("defaultBalance") or None,
    )


def is_report_row(data: Dict[str, Any]) -> bool:
    return "routingNumber" in data and "bankAccountRouting" not in data


def normalize_upload(text: str, mapping: Optional[Dict[str, str]] = None) -> Tuple[str, List[Dict[str, Any]]]:
    """Parse CSV text and normalize it into rows ready for the upload queue.

    Returns the detected format and the normalized rows as dictionaries.
    """
    headers, rows = parse_csv_text(text)
    row_format = mapping_format(mapping) if mapping else detect_format(headers)

    if row_format == FORMAT_BUSINESS:
        normalized = normalize_business_rows(rows, mapping)
    else:
        normalized = normalize_report_rows(rows, mapping or detect_report_mapping(headers))

    return row_format, [r.to_dict() for r in normalized]
