"""
Interactive fraud report submission.

A reporter files one primary report and optionally lists sibling accounts
owned by the same party. Each sibling with a 4 character last4 and a
resolvable routing number receives an association link pointing at the
primary account.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .banks import bank_name_from_routing, get_bank_by_name, get_bank_by_routing_number
from .config import UNDISCLOSED_COMPANY, is_company_name_hidden
from .schema import (
    ASSOCIATED_ACCOUNT,
    DEFAULT,
    RISK_TAGS,
    AccountKey,
    AccountRecord,
    Submission,
    iso_timestamp,
)
from .store import IAccountStore
from ..util.logging import logger


class SubmissionError(Exception):
    """A fraud report failed validation; nothing was written."""

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)


@dataclass
class AccountInput:
    """An account identified either by routing number or by bank name."""
    account_number_last4: str
    account_holder_name: str = ""
    routing_number: Optional[str] = None
    bank_name: Optional[str] = None

    def effective_routing(self) -> str:
        if self.routing_number and self.routing_number.strip():
            return self.routing_number.strip()
        bank = get_bank_by_name(self.bank_name or "")
        return bank.routing_numbers[0] if bank else ""

    def effective_bank_name(self) -> str:
        if self.bank_name and self.bank_name.strip():
            return self.bank_name.strip()
        routing = self.effective_routing()
        bank = get_bank_by_routing_number(routing)
        return bank.name if bank else bank_name_from_routing(routing)


@dataclass
class Reporter:
    email: str
    company_name: str


@dataclass
class SubmissionReceipt:
    submission_id: str
    key: AccountKey
    submitted_by: str
    company_name: str
    tags: List[str]
    timestamp: str
    associated_accounts: List[Dict[str, str]] = field(default_factory=list)

    @property
    def associated_accounts_processed(self) -> int:
        return len(self.associated_accounts)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "routing_number": self.key.routing_number,
            "account_number_last4": self.key.last4,
            "submitted_by": self.submitted_by,
            "company_name": self.company_name,
            "tags": list(self.tags),
            "associated_accounts_processed": self.associated_accounts_processed,
            "timestamp": self.timestamp,
            "status": "processed",
        }


def new_submission_id() -> str:
    return f"sub_{uuid.uuid4().hex[:16]}"


def validate_report(account: AccountInput, tags: List[str], default_balance: Optional[str]) -> None:
    if not account.effective_routing():
        raise SubmissionError("Invalid routing number", "Provide a routing number or a known bank name")
    if len(account.account_number_last4.strip()) != 4:
        raise SubmissionError("Invalid account number", "Account number must be exactly the last 4 digits")
    if not account.account_holder_name.strip():
        raise SubmissionError("Missing account holder name")
    if not tags:
        raise SubmissionError("At least one fraud tag is required")

    unknown = [t for t in tags if t not in RISK_TAGS]
    if unknown:
        raise SubmissionError(f"Unknown fraud tags: {', '.join(unknown)}", f"Valid tags: {', '.join(RISK_TAGS)}")
    if DEFAULT in tags and not (default_balance and str(default_balance).strip()):
        raise SubmissionError("Default balance is required when the default tag is selected")


def submit_fraud_report(store: IAccountStore, reporter: Reporter, account: AccountInput, tags: List[str],
                        notes: Optional[str] = None, default_balance: Optional[str] = None,
                        associated_accounts: Optional[List[AccountInput]] = None,
                        hide_company_name: Optional[bool] = None,
                        clock: Callable[[], datetime] = None) -> SubmissionReceipt:
    """Append a fraud report, plus association links for sibling accounts."""
    tags = list(dict.fromkeys(tags))
    validate_report(account, tags, default_balance)

    if hide_company_name is None:
        hide_company_name = is_company_name_hidden()
    now = iso_timestamp((clock or (lambda: datetime.now(timezone.utc)))())

    key = AccountKey(account.effective_routing(), account.account_number_last4.strip())
    submission = Submission(
        submitted_by=reporter.email,
        submitted_date=now,
        company_name=UNDISCLOSED_COMPANY if hide_company_name else reporter.company_name,
        actual_company_name=reporter.company_name,
        reporter_email=reporter.email,
        account_holder_name=account.account_holder_name.strip(),
        tags=tags,
        notes=(notes or "").strip() or None,
        default_balance=str(default_balance).strip() if DEFAULT in tags else None,
    )

    record = store.get(key)
    if record is None:
        record = AccountRecord(
            routing_number=key.routing_number,
            account_number_last4=key.last4,
            bank_name=account.effective_bank_name(),
            times_checked=0,
        )
    record.add_submission(submission)
    store.put(key, record)

    processed = []
    for sibling in associated_accounts or []:
        last4 = sibling.account_number_last4.strip()
        routing = sibling.effective_routing()
        if len(last4) != 4 or not routing:
            logger.warning(f"Skipping associated account for {key}: unresolvable routing or last4")
            continue

        sibling_key = AccountKey(routing, last4)
        if sibling_key == key:
            logger.warning(f"Skipping associated account {sibling_key}: same as the reported account")
            continue

        link = Submission(
            submitted_by=submission.submitted_by,
            submitted_date=now,
            company_name=submission.company_name,
            actual_company_name=submission.actual_company_name,
            reporter_email=submission.reporter_email,
            account_holder_name=sibling.account_holder_name.strip(),
            tags=[ASSOCIATED_ACCOUNT],
            notes=submission.notes,
            is_associated=True,
            associated_with=key,
        )

        sibling_record = store.get(sibling_key)
        if sibling_record is None:
            sibling_record = AccountRecord(
                routing_number=routing,
                account_number_last4=last4,
                bank_name=sibling.effective_bank_name(),
                times_checked=0,
                is_associated=True,
                associated_with=key,
            )
        sibling_record.add_submission(link)
        store.put(sibling_key, sibling_record)

        processed.append({
            "routing": routing,
            "accountLast4": last4,
            "bankName": sibling_record.bank_name,
            "accountHolderName": link.account_holder_name,
        })

    logger.log_submission(str(key), tags, associated_count=len(processed))

    return SubmissionReceipt(
        submission_id=new_submission_id(),
        key=key,
        submitted_by=reporter.email,
        company_name=submission.company_name,
        tags=tags,
        timestamp=now,
        associated_accounts=processed,
    )
