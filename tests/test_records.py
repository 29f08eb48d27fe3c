import io
import pytest
from decimal import Decimal
from unittest.mock import patch
from pydantic import ValidationError

from exceptions import MalformedRecordError
from models import (
    Account,
    AccountSnapshot,
    Chargeback,
    Deposit,
    Dispute,
    Resolve,
    Withdrawal,
    parse_event,
)
from records import RecordSource, write_accounts
from services import get_ledger_service


def read(text, **kwargs):
    return list(RecordSource(io.StringIO(text), **kwargs))


class TestEventModels:
    """Test event validation."""

    def test_parse_each_kind(self):
        assert isinstance(parse_event({"type": "deposit", "client": "1", "tx": "1", "amount": "1.0"}), Deposit)
        assert isinstance(parse_event({"type": "withdrawal", "client": "1", "tx": "2", "amount": "1"}), Withdrawal)
        assert isinstance(parse_event({"type": "dispute", "client": "1", "tx": "1"}), Dispute)
        assert isinstance(parse_event({"type": "resolve", "client": "1", "tx": "1"}), Resolve)
        assert isinstance(parse_event({"type": "chargeback", "client": "1", "tx": "1"}), Chargeback)

    def test_deposit_requires_amount(self):
        with pytest.raises(ValidationError):
            parse_event({"type": "deposit", "client": "1", "tx": "1"})

    def test_dispute_has_no_amount(self):
        event = parse_event({"type": "dispute", "client": "1", "tx": "1", "amount": "5"})

        assert not hasattr(event, "amount")

    @pytest.mark.parametrize("amount", ["-1", "1.00001", "abc", "NaN", "Infinity", "1e40", "10000000000000000000000000000"])
    def test_invalid_amounts_rejected(self, amount):
        with pytest.raises(ValidationError):
            parse_event({"type": "deposit", "client": "1", "tx": "1", "amount": amount})

    def test_trailing_zeros_beyond_four_places_accepted(self):
        event = parse_event({"type": "deposit", "client": "1", "tx": "1", "amount": "2.500000"})

        assert event.amount == Decimal("2.5")

    @pytest.mark.parametrize("client,tx", [("65536", "1"), ("-1", "1"), ("1", "4294967296"), ("1", "-1")])
    def test_ids_out_of_range_rejected(self, client, tx):
        with pytest.raises(ValidationError):
            parse_event({"type": "dispute", "client": client, "tx": tx})

    def test_id_bounds_accepted(self):
        event = parse_event({"type": "dispute", "client": "65535", "tx": "4294967295"})

        assert (event.client, event.tx) == (65535, 4294967295)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_event({"type": "refund", "client": "1", "tx": "1", "amount": "1"})

    def test_events_are_immutable(self):
        event = Deposit(client=1, tx=1, amount=Decimal("1"))

        with pytest.raises(ValidationError):
            event.amount = Decimal("2")


class TestRecordSource:
    """Test lazy CSV ingestion."""

    def test_reads_events_in_order(self):
        events = read(
            "type,client,tx,amount\n"
            "deposit,1,1,1.0\n"
            "deposit,2,2,2.0\n"
            "withdrawal,1,4,1.5\n"
            "dispute,1,1,\n"
        )

        assert [line for line, _ in events] == [2, 3, 4, 5]
        assert [event.type for _, event in events] == ["deposit", "deposit", "withdrawal", "dispute"]
        assert events[2][1].amount == Decimal("1.5")

    def test_whitespace_and_case_are_trimmed(self):
        events = read("type, client, tx, amount\n  Deposit ,  1 , 3 ,  2.75 \n")

        assert events[0][1] == Deposit(client=1, tx=3, amount=Decimal("2.75"))

    def test_absent_amount_column_accepted(self):
        events = read("type,client,tx,amount\nresolve,1,1\nchargeback,2,2,\n")

        assert events[0][1] == Resolve(client=1, tx=1)
        assert events[1][1] == Chargeback(client=2, tx=2)

    def test_blank_lines_skipped(self):
        events = read("type,client,tx,amount\n\ndeposit,1,1,1\n\n")

        assert len(events) == 1

    def test_empty_input(self):
        assert read("") == []

    def test_malformed_records_skipped_and_logged(self):
        source = RecordSource(io.StringIO(
            "type,client,tx,amount\n"
            "deposit,invalidclient,1,1.33\n"
            "deposit,3,3,invalidamount\n"
            "corn,potato\n"
            "deposit,1,4,1.0\n"
        ))

        with patch('records.logger') as mock_logger:
            events = list(source)
            assert mock_logger.warning.call_count == 3
            assert mock_logger.warning.call_args_list[0].kwargs["line"] == 2

        assert [line for line, _ in events] == [5]
        assert source.malformed == 3

    def test_strict_mode_raises(self):
        source = RecordSource(io.StringIO("type,client,tx,amount\ndeposit,1,1\n"), strict=True)

        with pytest.raises(MalformedRecordError) as excinfo:
            list(source)

        assert excinfo.value.line == 2
        assert "amount" in excinfo.value.detail

    def test_source_is_lazy(self):
        stream = io.StringIO("type,client,tx,amount\ndeposit,1,1,1\ndeposit,1,2,1\n")
        iterator = iter(RecordSource(stream))

        line, event = next(iterator)

        assert line == 2
        assert event.tx == 1
        assert stream.tell() < len(stream.getvalue())


class TestAccountReport:
    """Test account snapshot formatting."""

    def test_total_is_derived(self):
        account = Account(client=1, available=Decimal("-100"), held=Decimal("100"))

        assert account.total == Decimal("0")
        account.held = Decimal("150")
        assert account.total == Decimal("50")

    def test_snapshot_formats_four_places(self):
        snapshot = AccountSnapshot.from_account(
            Account(client=2, available=Decimal("1.5"), held=Decimal("0"), locked=True)
        )

        assert snapshot.available == "1.5000"
        assert snapshot.held == "0.0000"
        assert snapshot.total == "1.5000"
        assert snapshot.locked == "true"

    def test_write_accounts(self):
        out = io.StringIO()
        write_accounts([
            Account(client=1, available=Decimal("1.5")),
            Account(client=2, available=Decimal("-2"), held=Decimal("2.0001"), locked=True),
        ], out)

        assert out.getvalue() == (
            "client,available,held,total,locked\n"
            "1,1.5000,0.0000,1.5000,false\n"
            "2,-2.0000,2.0001,0.0001,true\n"
        )

    def test_large_balances_are_exact(self):
        service = get_ledger_service()
        service.apply(parse_event({"type": "deposit", "client": "1", "tx": "1", "amount": "500000000000000000000000"}))
        service.apply(parse_event({"type": "deposit", "client": "1", "tx": "2", "amount": "500000000000000000000000"}))
        service.apply(parse_event({"type": "deposit", "client": "2", "tx": "3", "amount": "9999999999999999999999999999.9999"}))
        service.apply(parse_event({"type": "deposit", "client": "2", "tx": "4", "amount": "9999999999999999999999999999.9999"}))

        out = io.StringIO()
        write_accounts(service.snapshot(), out)

        assert out.getvalue().splitlines()[1:] == [
            "1,1000000000000000000000000.0000,0.0000,1000000000000000000000000.0000,false",
            "2,19999999999999999999999999999.9998,0.0000,19999999999999999999999999999.9998,false",
        ]

    def test_write_no_accounts(self):
        out = io.StringIO()
        write_accounts([], out)

        assert out.getvalue() == "client,available,held,total,locked\n"
