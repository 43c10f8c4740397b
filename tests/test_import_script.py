"""
Command-line import utility tests.
"""

import json
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from import_accounts import main, parse_mapping  # noqa: E402

from fraudcheck.core.store import SQLiteAccountStore  # noqa: E402


REPORT_CSV = """ABA,Acct,Holder,Tags
021000021,5678,John Smith,fraud
"""


@pytest.fixture
def temp_db():
    fd, path = tempfile.mkstemp(suffix='.db')
    os.close(fd)
    yield path
    os.unlink(path)


@pytest.fixture
def csv_file():
    fd, path = tempfile.mkstemp(suffix='.csv')
    with os.fdopen(fd, 'w') as f:
        f.write(REPORT_CSV)
    yield path
    os.unlink(path)


def upload_id_from(output):
    return output.split("Upload queued for review: ")[1].split()[0]


class TestParseMapping:

    def test_pairs(self):
        assert parse_mapping(["routingNumber=ABA", " tags = Tags "]) == {"routingNumber": "ABA", "tags": "Tags"}

    def test_empty(self):
        assert parse_mapping([]) is None

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_mapping(["routingNumber"])


class TestCommands:

    def test_seed_and_clear(self, temp_db, capsys):
        with patch.dict('os.environ', {'TAG_SEED': '3'}):
            assert main(["--db", temp_db, "seed"]) == 0
        assert "Import completed: 15 new accounts, 2 updated" in capsys.readouterr().out
        assert SQLiteAccountStore(temp_db).count() == 15

        assert main(["--db", temp_db, "clear"]) == 0
        assert "Removed 15 imported accounts" in capsys.readouterr().out
        assert SQLiteAccountStore(temp_db).count() == 0

    def test_submit_list_approve(self, temp_db, csv_file, capsys):
        mapping = ["--map", "routingNumber=ABA", "--map", "accountNumberLast4=Acct", "--map", "accountHolderName=Holder",
                   "--map", "tags=Tags"]
        assert main(["--db", temp_db, "submit", csv_file, "--company", "Loot"] + mapping) == 0
        upload_id = upload_id_from(capsys.readouterr().out)

        assert main(["--db", temp_db, "list", "--status", "pending"]) == 0
        assert upload_id in capsys.readouterr().out

        assert main(["--db", temp_db, "approve", upload_id]) == 0
        assert "Successfully processed 1 accounts" in capsys.readouterr().out
        assert SQLiteAccountStore(temp_db).count() == 1

        assert main(["--db", temp_db, "approve", upload_id]) == 1
        assert "already approved" in capsys.readouterr().out

    def test_reject(self, temp_db, csv_file, capsys):
        mapping = ["--map", "routingNumber=ABA", "--map", "accountNumberLast4=Acct", "--map", "accountHolderName=Holder"]
        main(["--db", temp_db, "submit", csv_file, "--company", "Loot"] + mapping)
        upload_id = upload_id_from(capsys.readouterr().out)

        assert main(["--db", temp_db, "reject", upload_id, "--reason", "duplicate file"]) == 0
        assert SQLiteAccountStore(temp_db).count() == 0

    def test_unmapped_file_fails(self, temp_db, csv_file, capsys):
        assert main(["--db", temp_db, "submit", csv_file, "--company", "Loot"]) == 1
        assert "ERROR" in capsys.readouterr().out

    def test_missing_file(self, temp_db, capsys):
        assert main(["--db", temp_db, "submit", "/nonexistent/file.csv", "--company", "Loot"]) == 1
        assert "Cannot read file" in capsys.readouterr().out

    def test_unknown_upload(self, temp_db, capsys):
        assert main(["--db", temp_db, "approve", "upload_missing"]) == 1
        assert "not found" in capsys.readouterr().out

    def test_export(self, temp_db, capsys):
        with patch.dict('os.environ', {'TAG_SEED': '3'}):
            main(["--db", temp_db, "seed"])
        capsys.readouterr()

        assert main(["--db", temp_db, "export"]) == 0
        envelope = json.loads(capsys.readouterr().out)
        assert len(envelope["data"]) == 15
        assert envelope["version"] == "1.0"

    def test_invalid_config(self, temp_db, capsys):
        with patch.dict('os.environ', {'TAG_SEED': 'abc'}):
            assert main(["--db", temp_db, "seed"]) == 1
        assert "Invalid TAG_SEED" in capsys.readouterr().out
