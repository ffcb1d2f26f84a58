"""Tests for the command-line interface."""

import json

import pytest

from salestax_engine.cli import build_parser, main


def test_parser_requires_state_for_rates():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["rates"])


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main([])
    assert exc_info.value.code == 0
    assert "calculate" in capsys.readouterr().out


def test_calculate_requires_amount_and_state():
    with pytest.raises(SystemExit) as exc_info:
        main(["calculate", "--state", "CA"])
    assert exc_info.value.code == 1


def test_calculate_json_output(capsys):
    main(
        [
            "calculate",
            "--amount", "100.00",
            "--state", "CA",
            "--city", "Los Angeles",
            "--date", "2024-06-01",
            "--json",
        ]
    )
    result = json.loads(capsys.readouterr().out)
    # CA 7.25% + Los Angeles 2.5% from the built-in table
    assert result["totalTax"] == "9.75"
    assert result["grandTotal"] == "109.75"


def test_calculate_exempt_customer(capsys):
    main(["calculate", "--amount", "50", "--state", "TX", "--exempt", "--json"])
    result = json.loads(capsys.readouterr().out)
    assert result["isExempt"] is True
    assert result["totalTax"] == "0.00"


def test_calculate_without_nexus(capsys):
    main(
        [
            "calculate", "--amount", "50", "--state", "CA",
            "--business-state", "TX", "--json",
        ]
    )
    result = json.loads(capsys.readouterr().out)
    assert result["exemptionReason"] == "No nexus in CA"


def test_calculate_from_request_file(tmp_path, capsys):
    path = tmp_path / "request.json"
    path.write_text(
        json.dumps(
            {
                "items": [
                    {"id": "1", "quantity": 1, "unitPrice": "100.00"},
                    {"id": "2", "quantity": 1, "unitPrice": "40.00", "taxCategory": "food"},
                ],
                "address": {"city": "Houston", "state": "TX", "country": "US"},
                "transactionDate": "2024-06-01",
            }
        ),
        encoding="utf-8",
    )
    main(["calculate", "--file", str(path), "--json"])
    result = json.loads(capsys.readouterr().out)
    # TX 6.25% + Houston 2% on the general item only
    assert result["subtotal"] == "140.00"
    assert result["totalTax"] == "8.25"


def test_rates_command_uses_csv(tmp_path, capsys):
    path = tmp_path / "rates.csv"
    path.write_text(
        "record_id,jurisdiction_name,jurisdiction_code,rate,effective_date\n"
        "NV:state,State,NV,0.0685,2020-01-01\n",
        encoding="utf-8",
    )
    main(["--rates-csv", str(path), "rates", "--state", "NV", "--date", "2024-06-01"])
    out = capsys.readouterr().out
    assert "Combined rate: 6.850%" in out


@pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", "-5"])
def test_calculate_rejects_bad_amount(amount, capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["calculate", "--amount", amount, "--state", "CA"])
    assert exc_info.value.code == 1
    assert "Invalid amount" in capsys.readouterr().out


def test_request_file_with_full_state_name(tmp_path, capsys):
    path = tmp_path / "request.json"
    path.write_text(
        json.dumps(
            {
                "items": [{"id": "1", "quantity": 1, "unitPrice": "100.00"}],
                "address": {"state": "California", "country": "US"},
                "transactionDate": "2024-06-01",
            }
        ),
        encoding="utf-8",
    )
    main(["calculate", "--file", str(path), "--json"])
    result = json.loads(capsys.readouterr().out)
    assert result["isExempt"] is False
    assert result["totalTax"] == "7.25"
