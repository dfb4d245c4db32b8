import sys
import os
from datetime import date
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from csv_parser import CsvStatementParser, CsvTemplate, map_header, sniff_delimiter


@pytest.fixture
def parser():
    return CsvStatementParser()


def test_debit_credit_columns(parser):
    data = "Date;Débit;Crédit;Description\n01/03/2024;1000;0;Achat\n".encode("utf-8")
    txns = parser.parse(data, "releve.csv")
    assert len(txns) == 1
    assert txns[0].amount == Decimal("-1000")
    assert txns[0].description == "Achat"
    assert txns[0].transaction_date == date(2024, 3, 1)


def test_single_amount_column(parser):
    data = "Date;Montant;Description\n01/03/2024;1000;Vente\n".encode("utf-8")
    txns = parser.parse(data, "releve.csv")
    assert txns[0].amount == Decimal("1000")
    assert txns[0].description == "Vente"


def test_generic_csv_end_to_end(parser):
    data = (
        "Date,Description,Montant,Référence\n"
        "01/01/2024,Vente comptoir,1000,REF001\n"
        "02/01/2024,Achat fournitures,-500,REF002\n"
        "03/01/2024,Virement client,2000.50,REF003\n"
    ).encode("utf-8")

    txns = parser.parse(data, "releve.csv")

    assert [(t.transaction_date, t.amount, t.description, t.bank_reference) for t in txns] == [
        (date(2024, 1, 1), Decimal("1000"), "Vente comptoir", "REF001"),
        (date(2024, 1, 2), Decimal("-500"), "Achat fournitures", "REF002"),
        (date(2024, 1, 3), Decimal("2000.50"), "Virement client", "REF003"),
    ]


def test_bad_row_is_skipped_not_fatal(parser):
    data = (
        "Date,Description,Montant\n"
        "01/03/2024,Ligne 1,100\n"
        "02/03/2024,Ligne 2,200\n"
        "pas une date,Ligne 3,300\n"
        "04/03/2024,Ligne 4,400\n"
        "05/03/2024,Ligne 5,500\n"
    ).encode("utf-8")

    report = parser.parse_report(data, "releve.csv")

    assert len(report.transactions) == 4
    assert report.skipped == 1
    assert [t.description for t in report.transactions] == ["Ligne 1", "Ligne 2", "Ligne 4", "Ligne 5"]
    assert "row 4" in report.warnings[0]


def test_unparsable_amount_skips_row(parser):
    data = b"Date;Montant;Description\n01/03/2024;abc;X\n02/03/2024;12,50;Y\n"
    report = parser.parse_report(data, "releve.csv")
    assert [t.amount for t in report.transactions] == [Decimal("12.50")]
    assert report.skipped == 1


def test_blank_rows_are_ignored(parser):
    data = b"Date;Montant;Description\n01/03/2024;10;X\n;;\n\n02/03/2024;20;Y\n"
    report = parser.parse_report(data, "releve.csv")
    assert len(report.transactions) == 2
    assert report.skipped == 0


def test_parentheses_and_french_amounts(parser):
    data = "Date;Libellé;Montant\n01/03/2024;Frais;(250,00)\n02/03/2024;Dépôt;1 234,56\n".encode("latin-1")
    txns = parser.parse(data, "releve.csv")
    assert txns[0].amount == Decimal("-250.00")
    assert txns[1].amount == Decimal("1234.56")
    assert txns[1].description == "Dépôt"


def test_headerless_file_uses_positional_layout(parser):
    data = b"01/03/2024,Vente,1000,R1\n2024-03-02,Achat,-20,R2\n"
    txns = parser.parse(data, "releve.csv")
    assert len(txns) == 2
    assert txns[0].bank_reference == "R1"
    assert txns[1].transaction_date == date(2024, 3, 2)
    assert txns[1].amount == Decimal("-20")


def test_headerless_first_row_with_bad_date_is_counted(parser):
    data = b"31/02/2024,Vente,1000,R1\n01/03/2024,Achat,-20,R2\n"
    report = parser.parse_report(data, "releve.csv")
    assert [t.bank_reference for t in report.transactions] == ["R2"]
    assert report.skipped == 1
    assert "row 1" in report.warnings[0]


def test_two_digit_year_is_not_a_default_format(parser):
    report = parser.parse_report(b"Date,Description,Montant\n01/03/24,Vente,1000\n", "releve.csv")
    assert report.transactions == []
    assert report.skipped == 1

    template = CsvTemplate(name="short-year", date_formats=("%d/%m/%y",))
    txns = parser.parse(b"Date,Description,Montant\n01/03/24,Vente,1000\n", "releve.csv", template=template)
    assert txns[0].transaction_date == date(2024, 3, 1)


def test_default_date_patterns(parser):
    data = b"Date,Description,Montant\n1/3/2024,A,1\n2024-03-02,B,2\n12/25/2024,C,3\n"
    txns = parser.parse(data, "releve.csv")
    assert [t.transaction_date for t in txns] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 12, 25)]


def test_value_date_and_balance_columns(parser):
    data = (
        "Date opération;Date valeur;Libellé;Débit;Crédit;Solde\n"
        "01/03/2024;03/03/2024;Virement;;5000;15000\n"
    ).encode("utf-8")
    txn = parser.parse(data, "releve.csv", default_currency="XAF")[0]
    assert txn.transaction_date == date(2024, 3, 1)
    assert txn.value_date == date(2024, 3, 3)
    assert txn.amount == Decimal("5000")
    assert txn.balance_after == Decimal("15000")
    assert txn.currency == "XAF"


def test_template_is_applied_per_call(parser):
    template = CsvTemplate.from_dict("CSV_SGBC", {
        "delimiter": ";",
        "encoding": "latin-1",
        "skip_rows": 1,
        "date_column": "Date opération",
        "description_column": "Libellé",
        "debit_column": "Débit",
        "credit_column": "Crédit",
        "date_formats": ["%d/%m/%Y"],
        "decimal_separator": ",",
    })
    data = (
        "RELEVE DE COMPTE SGBC\n"
        "Date opération;Libellé;Débit;Crédit;Solde\n"
        "01/03/2024;Achat;1.500,00;;98.500,00\n"
    ).encode("latin-1")

    report = parser.parse_report(data, "sgbc.csv", template=template)

    assert report.format_name == "CSV (CSV_SGBC)"
    assert report.transactions[0].amount == Decimal("-1500.00")
    assert report.transactions[0].balance_after == Decimal("98500.00")

    # the instance keeps no layout between calls
    plain = parser.parse_report(b"Date;Montant\n01/03/2024;1.5\n", "a.csv")
    assert plain.format_name == "CSV"
    assert plain.transactions[0].amount == Decimal("1.5")


def test_template_with_column_indexes(parser):
    template = CsvTemplate(name="bank", delimiter="|", has_header=False, date_column=1,
                           amount_column=0, description_column=2)
    txns = parser.parse(b"-300|15/03/2024|Retrait DAB\n", "a.csv", template=template)
    assert txns[0].amount == Decimal("-300")
    assert txns[0].transaction_date == date(2024, 3, 15)
    assert txns[0].description == "Retrait DAB"


def test_template_unknown_key_rejected():
    with pytest.raises(ValueError):
        CsvTemplate.from_dict("CSV_UBA", {"amount_col": 2})


def test_sniff_delimiter():
    assert sniff_delimiter("Date;Montant;Description") == ";"
    assert sniff_delimiter("Date\tMontant") == "\t"
    assert sniff_delimiter("Date|Montant") == "|"
    assert sniff_delimiter("Date") == ","


def test_map_header_is_accent_insensitive():
    assert map_header(["DATE", "DÉBIT", "crédit", "Libellé", "Référence"]) == {
        "date": 0, "debit": 1, "credit": 2, "description": 3, "reference": 4,
    }


def test_empty_file(parser):
    report = parser.parse_report(b"", "empty.csv")
    assert report.transactions == []
    assert report.skipped == 0
