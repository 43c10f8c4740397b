"""
Fraud status evaluator: the central "is this account risky?" query.

A check of (routing, last4) resolves to exactly one of three outcomes:

* Not Reported: no record, or a record whose submissions are all
  association links. An unknown key gets a fresh record with
  times_checked 1 and an inferred bank name.
* Associated: the record is linked to a flagged parent account.
* Flagged: at least one direct fraud report exists; reports are
  aggregated into counts, reporters, tags, notes and the first default
  balance on file.

Every check increments times_checked, so checks are not idempotent reads.
Name search scans submissions instead and never touches the counters.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .banks import bank_name_from_routing
from .schema import (
    ASSOCIATED_ACCOUNT,
    STATUS_ASSOCIATED,
    STATUS_FLAGGED,
    STATUS_NOT_REPORTED,
    AccountKey,
    AccountRecord,
    AssociatedAccountSummary,
    FraudCheckResult,
    NameSearchMatch,
    Submission,
    iso_timestamp,
)
from .store import IAccountStore
from ..util.logging import logger


NOTES_SEPARATOR = " | "
MULTIPLE_BANKS = "Multiple Banks"
NO_ACCOUNTS_FOUND = "No accounts found"
NO_FLAGGED_ACCOUNTS_FOUND = "No flagged accounts found"

WIRE_STATUS = {
    STATUS_FLAGGED: "Fraudulent",
    STATUS_ASSOCIATED: "Associated",
    STATUS_NOT_REPORTED: "Not Reported",
}

RECOMMENDATIONS = {
    STATUS_FLAGGED: "HIGH RISK: Do not process this transaction.",
    STATUS_ASSOCIATED: "CAUTION: This account is associated with a fraudulent account.",
    STATUS_NOT_REPORTED: "LOW RISK: Account appears legitimate.",
}


def _unique(values) -> List[Any]:
    """De-duplicate preserving first occurrence."""
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def aggregate_flagged(record: AccountRecord, submissions: List[Submission],
                      bank_name: Optional[str] = None) -> FraudCheckResult:
    """Fold direct fraud reports into a Flagged result."""
    notes = NOTES_SEPARATOR.join(s.notes for s in submissions if s.notes and s.notes.strip())
    default_balance = next((s.default_balance for s in submissions if s.default_balance), None)

    return FraudCheckResult(
        fraud_status=STATUS_FLAGGED,
        bank_name=bank_name or record.bank_name,
        times_checked=record.times_checked,
        tags=_unique(tag for s in submissions for tag in s.tags),
        flagged_count=len(submissions),
        flagged_by=_unique(s.company_name for s in submissions),
        last_flagged_date=submissions[-1].submitted_date,
        notes=notes or None,
        default_balance=default_balance,
    )


def _associated_result(store: IAccountStore, record: AccountRecord) -> FraudCheckResult:
    link = next((s for s in record.submissions if s.is_associated), None)
    parent = store.get(record.associated_with)

    summary = None
    if parent is not None:
        summary = AssociatedAccountSummary(
            routing_number=parent.routing_number,
            account_number_last4=parent.account_number_last4,
            bank_name=parent.bank_name,
            reported_by=_unique(s.company_name for s in parent.submissions),
        )

    return FraudCheckResult(
        fraud_status=STATUS_ASSOCIATED,
        bank_name=record.bank_name,
        times_checked=record.times_checked,
        tags=[ASSOCIATED_ACCOUNT],
        notes=link.notes if link else None,
        associated_with=record.associated_with,
        associated_fraud_account=summary,
    )


def evaluate_record(store: IAccountStore, record: AccountRecord) -> FraudCheckResult:
    """Status of an already loaded record, without side effects."""
    if record.is_associated and record.associated_with:
        return _associated_result(store, record)

    flagging = record.flagging_submissions()
    if flagging:
        return aggregate_flagged(record, flagging)

    return FraudCheckResult(
        fraud_status=STATUS_NOT_REPORTED,
        bank_name=record.bank_name,
        times_checked=record.times_checked,
    )


def check_account(store: IAccountStore, routing_number: str, account_number_last4: str) -> FraudCheckResult:
    """Look up an account and count the lookup.

    Unknown keys are stored as new records with times_checked 1.
    """
    key = AccountKey(routing_number.strip(), account_number_last4.strip())
    record = store.get(key)

    if record is None:
        record = AccountRecord(
            routing_number=key.routing_number,
            account_number_last4=key.last4,
            bank_name=bank_name_from_routing(key.routing_number),
            times_checked=1,
        )
    else:
        record.times_checked += 1
    store.put(key, record)

    result = evaluate_record(store, record)
    logger.log_check(str(key), result.fraud_status, result.times_checked)
    return result


def _name_matches(record: AccountRecord, needle: str) -> bool:
    return any(needle in (s.account_holder_name or "").lower() for s in record.submissions)


def search_by_name(store: IAccountStore, account_holder_name: str) -> FraudCheckResult:
    """Find accounts whose reports name a matching account holder.

    The aggregated view describes only the first matching record; every match
    is listed in name_search_results.
    """
    needle = account_holder_name.strip().lower()
    matches = [record for _, record in store.get_all() if _name_matches(record, needle)] if needle else []
    logger.log_name_search(len(needle), len(matches))

    if not matches:
        return FraudCheckResult(fraud_status=STATUS_NOT_REPORTED, bank_name=NO_ACCOUNTS_FOUND, times_checked=0)

    first = matches[0]
    flagging = first.flagging_submissions()
    if not flagging:
        return FraudCheckResult(fraud_status=STATUS_NOT_REPORTED, bank_name=NO_FLAGGED_ACCOUNTS_FOUND, times_checked=0)

    result = aggregate_flagged(first, flagging, bank_name=MULTIPLE_BANKS)
    for record in matches:
        reports = record.flagging_submissions()
        result.name_search_results.append(NameSearchMatch(
            routing_number=record.routing_number,
            account_number_last4=record.account_number_last4,
            bank_name=record.bank_name,
            flagged_count=len(reports),
            reported_by=_unique(s.company_name for s in reports),
            tags=_unique(tag for s in record.submissions for tag in s.tags),
        ))
    return result


# --- wire format ------------------------------------------------------------------

def new_check_id() -> str:
    return f"chk_{uuid.uuid4().hex[:16]}"


def to_wire(result: FraudCheckResult, check_id: Optional[str] = None,
            now: Optional[datetime] = None) -> Dict[str, Any]:
    """Snake_case integrator payload for a check result."""
    data: Dict[str, Any] = {
        "fraud_status": WIRE_STATUS[result.fraud_status],
        "bank_name": result.bank_name,
        "times_checked": result.times_checked,
        "tags": list(result.tags),
    }

    if result.fraud_status == STATUS_FLAGGED:
        data.update({
            "flagged_count": result.flagged_count,
            "flagged_by": list(result.flagged_by),
            "last_flagged_date": result.last_flagged_date,
            "notes": result.notes,
            "default_balance": result.default_balance,
        })
    elif result.fraud_status == STATUS_ASSOCIATED:
        parent = result.associated_fraud_account
        data["associated_with"] = {
            "routing_number": parent.routing_number,
            "account_number_last4": parent.account_number_last4,
            "bank_name": parent.bank_name,
            "reported_by": list(parent.reported_by),
        } if parent else None
        data["notes"] = result.notes
    else:
        data["flagged_count"] = 0
        data["flagged_by"] = []

    if result.name_search_results:
        data["name_search_results"] = [
            {
                "routing_number": m.routing_number,
                "account_number_last4": m.account_number_last4,
                "bank_name": m.bank_name,
                "flagged_count": m.flagged_count,
                "reported_by": list(m.reported_by),
                "tags": list(m.tags),
            }
            for m in result.name_search_results
        ]

    data["recommendation"] = RECOMMENDATIONS[result.fraud_status]
    data["check_id"] = check_id or new_check_id()
    data["timestamp"] = iso_timestamp(now or datetime.now(timezone.utc))
    return data
