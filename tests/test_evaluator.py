"""
Fraud status evaluator tests - statuses, aggregation, check counting, name search.
"""

import random
from datetime import datetime, timezone

import pytest

from fraudcheck.core.evaluator import (
    MULTIPLE_BANKS,
    NO_ACCOUNTS_FOUND,
    NO_FLAGGED_ACCOUNTS_FOUND,
    check_account,
    evaluate_record,
    search_by_name,
    to_wire,
)
from fraudcheck.core.resolver import apply_upload_rows
from fraudcheck.core.schema import AccountKey, AccountRecord, BusinessRow, Submission
from fraudcheck.core.store import InMemoryAccountStore
from fraudcheck.core.submissions import AccountInput, Reporter, submit_fraud_report


def submission(company, tags, notes=None, default_balance=None, date="2024-01-01T00:00:00.000Z",
               holder="John Smith"):
    return Submission(
        submitted_by=f"analyst@{company.lower()}.com",
        submitted_date=date,
        company_name=company,
        reporter_email=f"analyst@{company.lower()}.com",
        account_holder_name=holder,
        tags=tags,
        notes=notes,
        default_balance=default_balance,
    )


def put_record(store, routing, last4, submissions, times_checked=0, bank_name="Test Bank"):
    record = AccountRecord(routing_number=routing, account_number_last4=last4, bank_name=bank_name,
                           times_checked=times_checked, submissions=list(submissions))
    store.put(record.key, record)
    return record


def business_row(business, owner, routing, number, is_default):
    return BusinessRow(business, owner, "", "", routing, number, "checking", is_default, is_default)


@pytest.fixture
def store():
    return InMemoryAccountStore()


class TestNotReported:

    def test_unknown_key_creates_record(self, store):
        """Scenario C: a key never seen is Not Reported with no tags."""
        result = check_account(store, "121000248", "9876")

        assert result.fraud_status == "Not Reported"
        assert result.tags == []
        assert result.times_checked == 1
        assert result.bank_name == "Wells Fargo Bank"

        record = store.get(AccountKey("121000248", "9876"))
        assert record is not None
        assert record.times_checked == 1
        assert record.submissions == []

    def test_unknown_routing_uses_fallback_bank_name(self, store):
        result = check_account(store, "000000003", "1111")
        assert result.bank_name == "U.S. Bank"

    @pytest.mark.parametrize("n", [1, 2, 5])
    def test_n_checks_count_n(self, store, n):
        for _ in range(n):
            result = check_account(store, "021000021", "0001")
        assert result.times_checked == n
        assert store.get(AccountKey("021000021", "0001")).times_checked == n

    def test_only_association_links_is_not_reported(self, store):
        link = submission("Loot", ["associated_account"])
        link.is_associated = True
        put_record(store, "021000021", "5678", [link], times_checked=3)

        result = check_account(store, "021000021", "5678")
        assert result.fraud_status == "Not Reported"
        assert result.times_checked == 4


class TestFlagged:

    def test_scenario_a_single_report(self, store):
        submit_fraud_report(
            store,
            Reporter(email="analyst@loot.com", company_name="Loot"),
            AccountInput(account_number_last4="5678", account_holder_name="John Smith", routing_number="021000021"),
            tags=["fraud", "stacking"],
            hide_company_name=False,
        )

        result = check_account(store, "021000021", "5678")
        assert result.fraud_status == "Flagged"
        assert result.flagged_count == 1
        assert result.flagged_by == ["Loot"]
        assert "fraud" in result.tags
        assert "stacking" in result.tags

    def test_aggregation(self, store):
        put_record(store, "021000021", "5678", [
            submission("Loot", ["fraud", "stacking"], notes="first", date="2024-01-01T00:00:00.000Z"),
            submission("Kabbage", ["stacking", "fake_deposits"], notes="  ", date="2024-02-01T00:00:00.000Z"),
            submission("Loot", ["fraud"], notes="third", date="2024-03-01T00:00:00.000Z"),
        ], times_checked=14)

        result = check_account(store, "021000021", "5678")
        assert result.flagged_count == 3
        assert result.flagged_by == ["Loot", "Kabbage"]
        assert result.tags == ["fraud", "stacking", "fake_deposits"]
        assert result.notes == "first | third"
        assert result.last_flagged_date == "2024-03-01T00:00:00.000Z"
        assert result.times_checked == 15

    def test_overlapping_tags_union_without_duplicates(self, store):
        put_record(store, "021000021", "5678", [
            submission("Loot", ["fraud", "default"]),
            submission("OnDeck", ["default", "stacking", "fraud"]),
        ])
        result = check_account(store, "021000021", "5678")
        assert sorted(result.tags) == ["default", "fraud", "stacking"]
        assert len(result.tags) == len(set(result.tags))

    def test_scenario_d_first_default_balance_wins(self, store):
        put_record(store, "021000021", "5678", [
            submission("Loot", ["fraud"]),
            submission("Kabbage", ["fraud", "default"], default_balance="15000"),
            submission("OnDeck", ["default"], default_balance="22000"),
        ])
        result = check_account(store, "021000021", "5678")
        assert result.default_balance == "15000"

    def test_association_links_are_not_counted(self, store):
        link = submission("Loot", ["associated_account"])
        link.is_associated = True
        put_record(store, "021000021", "5678", [submission("Kabbage", ["fraud"]), link])

        result = check_account(store, "021000021", "5678")
        assert result.fraud_status == "Flagged"
        assert result.flagged_count == 1
        assert result.flagged_by == ["Kabbage"]
        assert "associated_account" not in result.tags

    def test_no_notes_is_none(self, store):
        put_record(store, "021000021", "5678", [submission("Loot", ["fraud"])])
        assert check_account(store, "021000021", "5678").notes is None


class TestAssociated:

    def test_scenario_b_approved_batch(self, store):
        rows = [
            business_row("Acme", "Wile", "111000025", "****1234", True),
            business_row("Acme", "Wile", "222000037", "****9999", False),
        ]
        apply_upload_rows(store, "Loot", rows, rng=random.Random(3))

        result = check_account(store, "222000037", "9999")
        assert result.fraud_status == "Associated"
        assert result.tags == ["associated_account"]
        assert result.associated_with == AccountKey("111000025", "1234")
        assert result.associated_fraud_account.routing_number == "111000025"
        assert result.associated_fraud_account.reported_by == ["Loot"]
        assert result.notes == "Associated account linked to flagged business: Acme. Owner: Wile."

        parent = check_account(store, "111000025", "1234")
        assert parent.fraud_status == "Flagged"

    def test_missing_parent_has_no_summary(self, store):
        record = AccountRecord(routing_number="222000037", account_number_last4="9999", bank_name="TD Bank",
                               is_associated=True, associated_with=AccountKey("111000025", "1234"))
        link = submission("Loot", ["associated_account"])
        link.is_associated = True
        link.associated_with = AccountKey("111000025", "1234")
        record.add_submission(link)
        store.put(record.key, record)

        result = check_account(store, "222000037", "9999")
        assert result.fraud_status == "Associated"
        assert result.associated_fraud_account is None

    def test_scenario_e_standalone_group(self, store):
        rows = [
            business_row("Solo LLC", "Jane Roe", "222000037", "4444", False),
            business_row("Solo LLC", "Jane Roe", "121000248", "5555", False),
        ]
        apply_upload_rows(store, "Loot", rows, rng=random.Random(3))

        for routing, last4 in (("222000037", "4444"), ("121000248", "5555")):
            record = store.get(AccountKey(routing, last4))
            assert record.associated_with is None
            assert record.submissions[0].tags == ["associated_account"]
            assert check_account(store, routing, last4).fraud_status == "Not Reported"


class TestEvaluateRecord:

    def test_does_not_count(self, store):
        record = put_record(store, "021000021", "5678", [submission("Loot", ["fraud"])], times_checked=2)
        result = evaluate_record(store, record)
        assert result.fraud_status == "Flagged"
        assert store.get(record.key).times_checked == 2


class TestNameSearch:

    def test_no_match(self, store):
        put_record(store, "021000021", "5678", [submission("Loot", ["fraud"])])
        result = search_by_name(store, "Nobody")
        assert result.fraud_status == "Not Reported"
        assert result.bank_name == NO_ACCOUNTS_FOUND
        assert result.times_checked == 0

    def test_first_match_aggregated_and_all_listed(self, store):
        put_record(store, "021000021", "5678", [
            submission("Loot", ["fraud"], holder="John Smith", notes="a"),
            submission("Kabbage", ["stacking"], holder="J. Smith"),
        ], times_checked=7)
        put_record(store, "111000025", "1234", [submission("OnDeck", ["default"], holder="JOHN SMITHSON")])
        put_record(store, "121000248", "9999", [submission("Loot", ["fraud"], holder="Someone Else")])

        result = search_by_name(store, "john smith")

        assert result.fraud_status == "Flagged"
        assert result.bank_name == MULTIPLE_BANKS
        assert result.flagged_count == 2
        assert result.flagged_by == ["Loot", "Kabbage"]
        assert result.times_checked == 7
        assert [(m.routing_number, m.account_number_last4) for m in result.name_search_results] == [
            ("021000021", "5678"), ("111000025", "1234")
        ]
        assert result.name_search_results[1].reported_by == ["OnDeck"]

    def test_does_not_modify_counters(self, store):
        put_record(store, "021000021", "5678", [submission("Loot", ["fraud"])], times_checked=3)
        search_by_name(store, "john")
        assert store.get(AccountKey("021000021", "5678")).times_checked == 3

    def test_only_associated_match(self, store):
        link = submission("Loot", ["associated_account"], holder="Jane Roe")
        link.is_associated = True
        put_record(store, "222000037", "4444", [link])

        result = search_by_name(store, "jane")
        assert result.fraud_status == "Not Reported"
        assert result.bank_name == NO_FLAGGED_ACCOUNTS_FOUND
        assert result.times_checked == 0


class TestWireFormat:

    NOW = datetime(2024, 1, 20, 14, 30, 22, tzinfo=timezone.utc)

    def test_flagged_maps_to_fraudulent(self, store):
        put_record(store, "021000021", "5678", [submission("Loot", ["fraud", "stacking"])])
        data = to_wire(check_account(store, "021000021", "5678"), now=self.NOW)

        assert data["fraud_status"] == "Fraudulent"
        assert data["flagged_count"] == 1
        assert data["flagged_by"] == ["Loot"]
        assert data["recommendation"] == "HIGH RISK: Do not process this transaction."
        assert data["check_id"].startswith("chk_")
        assert data["timestamp"] == "2024-01-20T14:30:22.000Z"

    def test_associated_payload(self, store):
        rows = [
            business_row("Acme", "Wile", "111000025", "1234", True),
            business_row("Acme", "Wile", "222000037", "9999", False),
        ]
        apply_upload_rows(store, "Loot", rows, rng=random.Random(3))
        data = to_wire(check_account(store, "222000037", "9999"))

        assert data["fraud_status"] == "Associated"
        assert data["associated_with"]["routing_number"] == "111000025"
        assert data["associated_with"]["reported_by"] == ["Loot"]
        assert data["recommendation"] == "CAUTION: This account is associated with a fraudulent account."

    def test_clean_payload(self, store):
        data = to_wire(check_account(store, "121000248", "9876"), check_id="chk_fixed")
        assert data["fraud_status"] == "Not Reported"
        assert data["flagged_count"] == 0
        assert data["flagged_by"] == []
        assert data["tags"] == []
        assert data["recommendation"] == "LOW RISK: Account appears legitimate."
        assert data["check_id"] == "chk_fixed"
