import json

import pytest

from creational_patterns.cli import main


def test_order_from_the_eu_shop(capsys):
    assert main(["order", "--locale", "eu", "--spoons", "3", "0", "1"]) == 0

    order = json.loads(capsys.readouterr().out)
    assert [d["name"] for d in order["drinks"]] == ["Latte", "Latte", "Green Tea", "Arctic Water"]
    assert [d["sugar"]["spoons"] for d in order["drinks"][:3]] == [3, 0, 1]


def test_order_uses_configured_locale(capsys, monkeypatch):
    monkeypatch.setenv("CREATIONAL_LOCALE", "us")

    assert main(["order"]) == 0

    assert json.loads(capsys.readouterr().out)["drinks"][0]["name"] == "Espresso"


def test_order_rejects_negative_spoons():
    with pytest.raises(SystemExit):
        main(["order", "--spoons", "1", "-1", "0"])


def test_database_billing_tests(capsys):
    assert main(["database", "--configuration", "billing-tests"]) == 0

    description = json.loads(capsys.readouterr().out)
    assert description["name"] == "billing-tests"
    assert description["sources"] == ["Billing"]
    assert description["stores"][0]["kind"] == "in-memory"


def test_database_app_on_disk(capsys, tmp_path):
    assert main(["database", "--configuration", "app"]) == 0

    description = json.loads(capsys.readouterr().out)
    assert description["sources"] == ["Users", "Invoices", "Billing"]
    assert description["stores"][0]["location"] == str(tmp_path / "com.example.app.sqlite")


def test_database_failure_exits_with_error(tmp_path, monkeypatch):
    # A regular file where the store directory should be: the store cannot be created.
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("CREATIONAL_STORE_DIRECTORY", str(blocker / "nested"))

    assert main(["database", "--configuration", "app"]) == 1


def test_unknown_configuration_is_rejected():
    with pytest.raises(SystemExit):
        main(["database", "--configuration", "staging"])


@pytest.mark.parametrize("timeout", ["0", "-1", "nan"])
def test_database_timeout_must_be_positive(timeout, capsys):
    with pytest.raises(SystemExit):
        main(["database", "--configuration", "app-tests", "--timeout", timeout])
    assert "timeout must be a positive number of seconds" in capsys.readouterr().err


def test_database_accepts_explicit_timeout(capsys):
    assert main(["database", "--configuration", "app-tests", "--timeout", "2.5"]) == 0
    assert json.loads(capsys.readouterr().out)["name"] == "app-tests"


def test_session_variants_hand_out_one_instance(capsys):
    assert main(["session"]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["shared_session_is_unique"] is True
    assert report["app_session_is_unique"] is True
    assert report["app_session_touches"] == 2
    assert set(report) == {
        "shared_session",
        "shared_session_is_unique",
        "app_session",
        "app_session_is_unique",
        "app_session_touches",
    }
