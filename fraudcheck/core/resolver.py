"""
Association resolver: links flagged "default" accounts of a business to
their sibling accounts and writes the resulting submissions into the
account store.

Rows are grouped by a pluggable grouping strategy (exact business and
owner names by default). Within a group every default row with a usable
routing number becomes a fraud report, and every other row becomes an
association link to the group's first usable default account. Groups with
no default rows are imported as standalone association records that carry
no link.

Two import policies exist:

* the seed import synthesizes dates, default balances and check counters
  from the injected RNG;
* admin approval of a pending upload uses the current time, no synthetic
  balances, and counters that move by exactly one.
"""

import random
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from .banks import bank_name_from_routing, import_bank_name
from .config import DEFAULT_IMPORT_COMPANY, get_rng
from .normalizer import (
    account_last4,
    business_row_from_dict,
    has_usable_routing,
    is_report_row,
    report_row_from_dict,
)
from .schema import (
    ASSOCIATED_ACCOUNT,
    BANK_DISCONNECTED,
    BLOCKED_PAYMENTS,
    DEFAULT,
    EXCESSIVE_NSFS,
    FAKE_DEPOSITS,
    FRAUD,
    STACKING,
    AccountKey,
    AccountRecord,
    BusinessRow,
    ImportSummary,
    ReportRow,
    Submission,
    iso_timestamp,
)
from .seed_data import SEED_ROWS
from .store import IAccountStore, PartialWriteError, StoreError
from ..util.logging import logger


GroupingStrategy = Callable[[BusinessRow], Hashable]

# First matching keyword group wins
TAG_RULES: List[Tuple[Tuple[str, ...], str]] = [
    (("transport", "logistics", "trucking"), STACKING),
    (("care", "health"), FAKE_DEPOSITS),
    (("construction", "remodel", "contractor"), DEFAULT),
    (("digital", "tech"), BANK_DISCONNECTED),
    (("management", "holding", "enterprise"), EXCESSIVE_NSFS),
    (("auto", "car"), BLOCKED_PAYMENTS),
]
FALLBACK_TAG_CHOICES = [STACKING, DEFAULT]

NOTE_TEMPLATES = [
    (ASSOCIATED_ACCOUNT, "Associated account linked to flagged business: {business}"),
    (STACKING, "{business} has shown patterns of loan stacking with multiple lenders. Suspicious activity detected."),
    (FAKE_DEPOSITS, "{business} has submitted manipulated bank statements with fake deposits. Verification recommended."),
    (DEFAULT, "{business} has defaulted on previous obligations. High risk of non-payment."),
    (BANK_DISCONNECTED, "{business} has repeatedly disconnected bank accounts during verification processes. Suspicious pattern."),
    (EXCESSIVE_NSFS, "{business} has excessive NSF transactions. Cash flow issues detected."),
    (BLOCKED_PAYMENTS, "{business} has had multiple payments blocked or returned. Payment risk detected."),
]
FALLBACK_NOTE = "Suspicious activity detected with {business}. Recommend enhanced verification."

IMPORT_REVIEWER_EMAIL = "admin@mybankcheck.com"


def exact_business_owner_key(row: BusinessRow) -> Hashable:
    """Default grouping: exact business and owner name match."""
    return (row.business_name, row.owner_name)


def casefold_business_owner_key(row: BusinessRow) -> Hashable:
    """Looser grouping that ignores case and repeated whitespace."""
    def clean(value):
        return re.sub(r"\s+", " ", value).strip().casefold()
    return (clean(row.business_name), clean(row.owner_name))


def infer_tags(business_name: str, rng: random.Random) -> List[str]:
    """Risk tags for a flagged business, inferred from its name."""
    name = business_name.lower()
    for keywords, tag in TAG_RULES:
        if any(keyword in name for keyword in keywords):
            return [FRAUD, tag]
    return [FRAUD, rng.choice(FALLBACK_TAG_CHOICES)]


def note_for_tags(business_name: str, tags: List[str]) -> str:
    for tag, template in NOTE_TEMPLATES:
        if tag in tags:
            return template.format(business=business_name)
    return FALLBACK_NOTE.format(business=business_name)


def association_note(business_name: str, owner_name: str) -> str:
    return f"Associated account linked to flagged business: {business_name}. Owner: {owner_name}."


def standalone_note(business_name: str, owner_name: str) -> str:
    return f"Account from {business_name}. Owner: {owner_name}."


def company_slug(company_name: str) -> str:
    return re.sub(r"\s+", "", company_name.lower())


def analyst_email(company_name: str) -> str:
    return f"fraud-analyst@{company_slug(company_name)}.com"


@dataclass
class ImportPolicy:
    """How an import fills in the values no spreadsheet provides."""
    submitted_by: str
    synthetic: bool = False

    @classmethod
    def seed(cls, company_name: str) -> 'ImportPolicy':
        return cls(submitted_by=analyst_email(company_name), synthetic=True)

    @classmethod
    def approval(cls, reviewer_email: str = IMPORT_REVIEWER_EMAIL) -> 'ImportPolicy':
        return cls(submitted_by=reviewer_email, synthetic=False)


class _Batch:
    """Read-through cache of records touched by one import, flushed at the end in one put_many."""

    def __init__(self, store: IAccountStore):
        self.store = store
        self._records: Dict[AccountKey, Optional[AccountRecord]] = {}
        self._dirty: List[AccountKey] = []

    def get(self, key: AccountKey) -> Optional[AccountRecord]:
        if key not in self._records:
            self._records[key] = self.store.get(key)
        return self._records[key]

    def put(self, key: AccountKey, record: AccountRecord) -> None:
        self._records[key] = record
        if key not in self._dirty:
            self._dirty.append(key)

    def flush(self) -> int:
        """Write every touched record; returns how many were written."""
        written = len(self._dirty)
        self.store.put_many([(key, self._records[key]) for key in self._dirty])
        self._dirty = []
        return written


class AssociationResolver:
    """Groups normalized rows and writes fraud and association submissions."""

    def __init__(self, store: IAccountStore, company_name: str, policy: ImportPolicy,
                 rng: Optional[random.Random] = None,
                 grouping: GroupingStrategy = exact_business_owner_key,
                 clock: Callable[[], datetime] = None):
        self.store = store
        self.company_name = company_name
        self.policy = policy
        self.rng = rng or get_rng()
        self.grouping = grouping
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # --- synthetic values ---------------------------------------------------------

    def _submitted_date(self) -> str:
        now = self.clock()
        if self.policy.synthetic:
            now = now - timedelta(milliseconds=self.rng.randrange(30 * 24 * 60 * 60 * 1000))
        return iso_timestamp(now)

    def _default_balance(self, tags: List[str]) -> Optional[str]:
        if DEFAULT in tags and self.policy.synthetic:
            return str(self.rng.randrange(40000) + 10000)
        return None

    def _initial_checks(self, is_default: bool) -> int:
        if not self.policy.synthetic:
            return 1
        return self.rng.randint(1, 10) if is_default else self.rng.randint(1, 5)

    def _check_increment(self, is_default: bool) -> int:
        if not self.policy.synthetic:
            return 1
        return self.rng.randint(1, 5) if is_default else self.rng.randint(1, 3)

    def _submission(self, holder: str, tags: List[str], notes: Optional[str],
                    default_balance: Optional[str] = None, is_associated: bool = False,
                    associated_with: Optional[AccountKey] = None) -> Submission:
        return Submission(
            submitted_by=self.policy.submitted_by,
            submitted_date=self._submitted_date(),
            company_name=self.company_name,
            reporter_email=self.policy.submitted_by,
            account_holder_name=holder,
            tags=tags,
            notes=notes,
            default_balance=default_balance,
            is_associated=is_associated,
            associated_with=associated_with,
        )

    # --- writes -------------------------------------------------------------------

    def _upsert(self, batch: _Batch, summary: ImportSummary, key: AccountKey, bank_name: str,
                submission: Submission, is_default: bool) -> None:
        record = batch.get(key)
        if record is not None:
            record.add_submission(submission)
            record.times_checked += self._check_increment(is_default)
            # A record with no reports of its own adopts the new link
            if submission.associated_with and not record.is_associated and not record.flagging_submissions():
                record.is_associated = True
                record.associated_with = submission.associated_with
            summary.updated += 1
        else:
            record = AccountRecord(
                routing_number=key.routing_number,
                account_number_last4=key.last4,
                bank_name=bank_name,
                times_checked=self._initial_checks(is_default),
                submissions=[submission],
                is_associated=submission.associated_with is not None,
                associated_with=submission.associated_with,
            )
            summary.imported += 1
        batch.put(key, record)

    @staticmethod
    def _row_key(row: BusinessRow) -> AccountKey:
        return AccountKey(row.bank_account_routing.strip(), account_last4(row.bank_account_number))

    def _resolve_group(self, batch: _Batch, summary: ImportSummary, rows: List[BusinessRow]) -> None:
        default_rows = [r for r in rows if r.is_default_account]
        associated_rows = [r for r in rows if not r.is_default_account]

        anchor = next((r for r in default_rows if has_usable_routing(r.bank_account_routing)), None)
        anchor_key = self._row_key(anchor) if anchor else None

        for row in default_rows:
            if not has_usable_routing(row.bank_account_routing):
                summary.skipped_rows += 1
                continue
            key = self._row_key(row)
            tags = infer_tags(row.business_name, self.rng)
            submission = self._submission(
                holder=row.bank_account_name or row.owner_name,
                tags=tags,
                notes=note_for_tags(row.business_name, tags),
                default_balance=self._default_balance(tags),
            )
            self._upsert(batch, summary, key, import_bank_name(row.bank_name, key.routing_number), submission, True)
            summary.default_count += 1

        for row in associated_rows:
            if not has_usable_routing(row.bank_account_routing):
                summary.skipped_rows += 1
                continue
            key = self._row_key(row)
            if anchor_key is not None and key != anchor_key:
                submission = self._submission(
                    holder=row.bank_account_name or row.owner_name,
                    tags=[ASSOCIATED_ACCOUNT],
                    notes=association_note(anchor.business_name, anchor.owner_name),
                    is_associated=True,
                    associated_with=anchor_key,
                )
            else:
                submission = self._submission(
                    holder=row.bank_account_name or row.owner_name,
                    tags=[ASSOCIATED_ACCOUNT],
                    notes=standalone_note(row.business_name, row.owner_name),
                    is_associated=True,
                )
            self._upsert(batch, summary, key, import_bank_name(row.bank_name, key.routing_number), submission, False)
            summary.associated_count += 1

    def _resolve_report(self, batch: _Batch, summary: ImportSummary, row: ReportRow) -> None:
        if not has_usable_routing(row.routing_number) or len(row.account_number_last4) != 4:
            summary.skipped_rows += 1
            return

        key = AccountKey(row.routing_number, row.account_number_last4)
        tags = [t for t in row.tags if t != ASSOCIATED_ACCOUNT]

        if not tags and ASSOCIATED_ACCOUNT in row.tags:
            submission = self._submission(row.account_holder_name, [ASSOCIATED_ACCOUNT], row.notes, is_associated=True)
            self._upsert(batch, summary, key, bank_name_from_routing(key.routing_number), submission, False)
            summary.associated_count += 1
            return

        tags = tags or [FRAUD]
        submission = self._submission(
            holder=row.account_holder_name,
            tags=tags,
            notes=row.notes,
            default_balance=row.default_balance if DEFAULT in tags else None,
        )
        self._upsert(batch, summary, key, bank_name_from_routing(key.routing_number), submission, True)
        summary.report_count += 1

    def resolve(self, rows: List[Any]) -> ImportSummary:
        """Resolve a batch of business rows, report rows, or their dict forms."""
        summary = ImportSummary()
        batch = _Batch(self.store)

        groups: Dict[Hashable, List[BusinessRow]] = {}
        reports: List[ReportRow] = []
        for row in rows:
            if isinstance(row, dict):
                row = report_row_from_dict(row) if is_report_row(row) else business_row_from_dict(row)
            if isinstance(row, ReportRow):
                reports.append(row)
            else:
                groups.setdefault(self.grouping(row), []).append(row)

        logger.info(f"Resolving {len(rows)} rows: {len(groups)} business groups, {len(reports)} direct reports")

        for group_rows in groups.values():
            self._resolve_group(batch, summary, group_rows)
        for report in reports:
            self._resolve_report(batch, summary, report)

        written = batch.flush()
        try:
            summary.total_accounts = self.store.count()
        except StoreError as e:
            raise PartialWriteError(written, written, e) from e
        logger.log_import_summary(self.company_name, summary.to_dict())
        return summary


def import_bank_account_data(store: IAccountStore, company_name: Optional[str] = None,
                             rows: Optional[List[Any]] = None, rng: Optional[random.Random] = None,
                             grouping: GroupingStrategy = exact_business_owner_key,
                             clock: Callable[[], datetime] = None) -> ImportSummary:
    """Seed import with synthetic reporting history; uses SEED_ROWS when rows is None."""
    company_name = company_name or DEFAULT_IMPORT_COMPANY
    logger.info(f"Starting bank account data import from {company_name}...")
    resolver = AssociationResolver(store, company_name, ImportPolicy.seed(company_name),
                                   rng=rng, grouping=grouping, clock=clock)
    return resolver.resolve(list(SEED_ROWS if rows is None else rows))


def apply_upload_rows(store: IAccountStore, company_name: str, rows: List[Any],
                      rng: Optional[random.Random] = None,
                      grouping: GroupingStrategy = exact_business_owner_key,
                      reviewer_email: str = IMPORT_REVIEWER_EMAIL,
                      clock: Callable[[], datetime] = None) -> ImportSummary:
    """Write an approved upload's rows into the store."""
    resolver = AssociationResolver(store, company_name, ImportPolicy.approval(reviewer_email),
                                   rng=rng, grouping=grouping, clock=clock)
    return resolver.resolve(rows)


def clear_imported_data(store: IAccountStore) -> int:
    """Remove every account that carries an imported submission."""
    removed = 0
    for key, record in list(store.get_all()):
        imported = any(
            '@' in s.submitted_by and ('fraud-analyst' in s.submitted_by or 'import' in s.submitted_by)
            for s in record.submissions
        )
        if imported and store.delete(key):
            removed += 1

    logger.info(f"Imported bank account data cleared: {removed} accounts removed")
    return removed
