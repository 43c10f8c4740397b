"""
Record types for the fraud database: account keys, submissions, account
records, normalized CSV rows, pending uploads and check results.

Records serialize to camelCase dictionaries so that exported envelopes keep
the field names used by the browser client.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


FRAUD = "fraud"
DEFAULT = "default"
STACKING = "stacking"
FAKE_DEPOSITS = "fake_deposits"
BANK_DISCONNECTED = "bank_disconnected"
BLOCKED_PAYMENTS = "blocked_payments"
EXCESSIVE_NSFS = "excessive_nsfs"
ASSOCIATED_ACCOUNT = "associated_account"

# Tags a reporter may select
RISK_TAGS = [FRAUD, DEFAULT, STACKING, FAKE_DEPOSITS, BANK_DISCONNECTED, BLOCKED_PAYMENTS, EXCESSIVE_NSFS]
ALL_TAGS = RISK_TAGS + [ASSOCIATED_ACCOUNT]

STATUS_FLAGGED = "Flagged"
STATUS_ASSOCIATED = "Associated"
STATUS_NOT_REPORTED = "Not Reported"

UPLOAD_PENDING = "pending"
UPLOAD_APPROVED = "approved"
UPLOAD_REJECTED = "rejected"
UPLOAD_STATUSES = [UPLOAD_PENDING, UPLOAD_APPROVED, UPLOAD_REJECTED]

KEY_SEPARATOR = "-"


@dataclass(frozen=True)
class AccountKey:
    routing_number: str
    last4: str

    def __str__(self) -> str:
        return f"{self.routing_number}{KEY_SEPARATOR}{self.last4}"

    @classmethod
    def parse(cls, value: str) -> 'AccountKey':
        """Parse a "<routing>-<last4>" string."""
        routing, sep, last4 = value.rpartition(KEY_SEPARATOR)
        if not sep or not routing or not last4:
            raise ValueError(f"Invalid account key: {value!r}")
        return cls(routing_number=routing, last4=last4)


def _key_or_none(value: Optional[str]) -> Optional[AccountKey]:
    if not value:
        return None
    return AccountKey.parse(value)


@dataclass
class Submission:
    """One fraud report or association link appended to an account."""
    submitted_by: str
    submitted_date: str
    company_name: str
    reporter_email: str
    account_holder_name: str
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    default_balance: Optional[str] = None
    is_associated: bool = False
    associated_with: Optional[AccountKey] = None
    actual_company_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'submittedBy': self.submitted_by,
            'submittedDate': self.submitted_date,
            'companyName': self.company_name,
            'reporterEmail': self.reporter_email,
            'accountHolderName': self.account_holder_name,
            'tags': list(self.tags),
            'notes': self.notes,
            'defaultBalance': self.default_balance,
            'isAssociated': self.is_associated,
            'associatedWith': str(self.associated_with) if self.associated_with else None,
        }
        if self.actual_company_name is not None:
            data['actualCompanyName'] = self.actual_company_name
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Submission':
        return cls(
            submitted_by=data.get('submittedBy', ''),
            submitted_date=data.get('submittedDate', ''),
            company_name=data.get('companyName', ''),
            reporter_email=data.get('reporterEmail', data.get('submittedBy', '')),
            account_holder_name=data.get('accountHolderName') or '',
            tags=list(data.get('tags') or []),
            notes=data.get('notes'),
            default_balance=data.get('defaultBalance'),
            is_associated=bool(data.get('isAssociated', False)),
            associated_with=_key_or_none(data.get('associatedWith')),
            actual_company_name=data.get('actualCompanyName'),
        )


@dataclass
class AccountRecord:
    """All reports filed against one routing/last4 pair.

    submissions is append-only and times_checked only grows. version is the
    stored revision the record was read at (None when never stored); it is
    not serialized.
    """
    routing_number: str
    account_number_last4: str
    bank_name: str
    times_checked: int = 0
    submissions: List[Submission] = field(default_factory=list)
    is_associated: bool = False
    associated_with: Optional[AccountKey] = None
    version: Optional[int] = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> AccountKey:
        return AccountKey(self.routing_number, self.account_number_last4)

    def add_submission(self, submission: Submission) -> None:
        self.submissions.append(submission)

    def flagging_submissions(self) -> List[Submission]:
        """Submissions that are fraud reports rather than association links."""
        return [s for s in self.submissions if not s.is_associated]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'routingNumber': self.routing_number,
            'accountNumberLast4': self.account_number_last4,
            'bankName': self.bank_name,
            'timesChecked': self.times_checked,
            'submissions': [s.to_dict() for s in self.submissions],
            'isAssociated': self.is_associated,
            'associatedWith': str(self.associated_with) if self.associated_with else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountRecord':
        return cls(
            routing_number=data['routingNumber'],
            account_number_last4=data['accountNumberLast4'],
            bank_name=data.get('bankName') or '',
            times_checked=int(data.get('timesChecked') or 0),
            submissions=[Submission.from_dict(s) for s in data.get('submissions') or []],
            is_associated=bool(data.get('isAssociated', False)),
            associated_with=_key_or_none(data.get('associatedWith')),
        )


@dataclass
class BusinessRow:
    """Canonical spreadsheet row describing one bank account of a business."""
    business_name: str
    owner_name: str
    bank_name: str
    bank_account_name: str
    bank_account_routing: str
    bank_account_number: str
    bank_account_type: str
    is_main_account: bool
    is_default_account: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'businessName': self.business_name,
            'ownerName': self.owner_name,
            'bankName': self.bank_name,
            'bankAccountName': self.bank_account_name,
            'bankAccountRouting': self.bank_account_routing,
            'bankAccountNumber': self.bank_account_number,
            'bankAccountType': self.bank_account_type,
            'isMainAccount': self.is_main_account,
            'isDefaultAccount': self.is_default_account,
        }


@dataclass
class ReportRow:
    """Canonical row from the customer report uploader."""
    routing_number: str
    account_number_last4: str
    account_holder_name: str
    tags: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    default_balance: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'routingNumber': self.routing_number,
            'accountNumberLast4': self.account_number_last4,
            'accountHolderName': self.account_holder_name,
            'tags': list(self.tags),
            'notes': self.notes,
            'defaultBalance': self.default_balance,
        }


@dataclass
class PendingUpload:
    id: str
    upload_date: datetime
    company_name: str
    file_name: str
    record_count: int
    status: str  # pending, approved, rejected
    data: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        data = asdict(self)
        data['upload_date'] = self.upload_date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingUpload':
        """Create from dictionary (for loading from storage)."""
        data = dict(data)
        data['upload_date'] = datetime.fromisoformat(data['upload_date'])
        return cls(**data)


@dataclass
class AssociatedAccountSummary:
    routing_number: str
    account_number_last4: str
    bank_name: str
    reported_by: List[str] = field(default_factory=list)


@dataclass
class NameSearchMatch:
    routing_number: str
    account_number_last4: str
    bank_name: str
    flagged_count: int
    reported_by: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass
class FraudCheckResult:
    fraud_status: str
    bank_name: str
    times_checked: int
    tags: List[str] = field(default_factory=list)
    flagged_count: int = 0
    flagged_by: List[str] = field(default_factory=list)
    last_flagged_date: Optional[str] = None
    notes: Optional[str] = None
    default_balance: Optional[str] = None
    associated_with: Optional[AccountKey] = None
    associated_fraud_account: Optional[AssociatedAccountSummary] = None
    name_search_results: List[NameSearchMatch] = field(default_factory=list)


@dataclass
class ImportSummary:
    imported: int = 0
    updated: int = 0
    default_count: int = 0
    associated_count: int = 0
    report_count: int = 0
    skipped_rows: int = 0
    total_accounts: int = 0

    @property
    def processed(self) -> int:
        return self.default_count + self.associated_count + self.report_count

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        data['processed'] = self.processed
        return data


def iso_timestamp(moment: datetime) -> str:
    """UTC timestamp with millisecond precision and a trailing Z."""
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"
