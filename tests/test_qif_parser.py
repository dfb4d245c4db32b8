import sys
import os
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from qif_parser import QifStatementParser


QIF = """!Type:Bank
D01/03/2024
T-1,000.00
PPapeterie Centrale
MFournitures bureau
N101
CX
^
D02/03/2024
U2500.50
T2500.50
PClient Alpha
^
"""


@pytest.fixture
def parser():
    return QifStatementParser()


def test_parse_records(parser):
    txns = parser.parse(QIF.encode("utf-8"), "export.qif", default_currency="XAF")

    assert len(txns) == 2
    debit, credit = txns
    assert debit.transaction_date == date(2024, 3, 1)
    assert debit.amount == Decimal("-1000.00")
    assert debit.description == "Papeterie Centrale - Fournitures bureau"
    assert debit.counterparty_name == "Papeterie Centrale"
    assert debit.bank_reference == "101"
    assert debit.additional_info == "Cleared: X"
    assert debit.currency == "XAF"

    assert credit.amount == Decimal("2500.50")
    assert credit.description == "Client Alpha"


def test_u_amount_used_when_t_missing(parser):
    txns = parser.parse(b"D05/03/2024\nU-75.25\n^\n", "a.qif")
    assert txns[0].amount == Decimal("-75.25")
    assert txns[0].description == "Transaction"


def test_last_record_without_terminator_is_kept(parser):
    txns = parser.parse(b"!Type:Bank\nD05/03/2024\nT10.00\nPLast", "a.qif")
    assert len(txns) == 1
    assert txns[0].description == "Last"


def test_apostrophe_year_separator(parser):
    txns = parser.parse(b"D01/03'24\nT5.00\n^\n", "a.qif")
    assert txns[0].transaction_date == date(2024, 3, 1)


def test_account_block_sets_account_number(parser):
    data = b"!Account\nNCM2100010001\nTBank\n^\n!Type:Bank\nD01/03/2024\nT-20.00\n^\n"
    txns = parser.parse(data, "a.qif")
    assert len(txns) == 1
    assert txns[0].account_number == "CM2100010001"


def test_incomplete_records_are_counted(parser):
    data = b"D01/03/2024\nPNo amount\n^\nT15.00\nPNo date\n^\nD02/03/2024\nT1.00\n^\n"
    report = parser.parse_report(data, "a.qif")
    assert len(report.transactions) == 1
    assert report.skipped == 2
    assert report.total == 3
