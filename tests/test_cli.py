import json
from datetime import datetime

import pytest

from benefit_cycles import cli
from benefit_cycles.models.benefit import Benefit
from benefit_cycles.models.benefit_status import BenefitStatus
from benefit_cycles.models.card import Card
from benefit_cycles.models.user import User

PLAN_YAML = """\
id: gold_uber
card_name: Gold Card
benefits:
  - category: Travel
    description: $10 monthly Uber Cash
    max_amount: 10
    frequency: MONTHLY
    cycle_alignment: CALENDAR_FIXED
    fixed_cycle_start_month: 1
    fixed_cycle_duration_months: 1
"""


@pytest.fixture(autouse=True)
def _cli_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(cli, "SessionLocal", session_factory)


def _seed(db) -> Benefit:
    user = User(email="cli@example.com")
    db.add(user)
    db.flush()
    card = Card(user_id=user.id, name="Gold Card", issuer="Amex", opened_date=datetime(2024, 2, 1))
    db.add(card)
    db.flush()
    benefit = Benefit(
        card_id=card.id,
        category="Dining",
        description="$120 dining credit",
        max_amount=120,
        frequency="YEARLY",
        start_date=datetime(2024, 2, 1),
    )
    db.add(benefit)
    db.commit()
    return benefit


def test_reconcile(db_session, capsys):
    _seed(db_session)
    assert cli.main(["reconcile"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["cards_processed"] == 1
    assert summary["upserts_successful"] == 1
    assert db_session.query(BenefitStatus).count() == 1


def test_reconcile_user_filter(db_session, capsys):
    _seed(db_session)
    assert cli.main(["reconcile", "--user-id", "999"]) == 0
    assert json.loads(capsys.readouterr().out)["cards_processed"] == 0


def test_repair_duplicates_dry_run_then_force(db_session, capsys):
    benefit = _seed(db_session)
    for hour in (0, 7):
        db_session.add(BenefitStatus(
            benefit_id=benefit.id,
            user_id=benefit.card.user_id,
            cycle_start_date=datetime(2025, 2, 1, hour),
            cycle_end_date=datetime(2026, 1, 31, 23, 59, 59),
        ))
    db_session.commit()

    assert cli.main(["repair-duplicates"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["dry_run"]
    assert report["rows_to_delete"] == 1
    assert db_session.query(BenefitStatus).count() == 2

    assert cli.main(["repair-duplicates", "--force", "--batch-size", "10"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["deleted"] == 1
    assert db_session.query(BenefitStatus).count() == 1


def test_migrate_dry_run_and_apply(db_session, tmp_path, capsys):
    _seed(db_session)
    plan = tmp_path / "plan.yaml"
    plan.write_text(PLAN_YAML)

    assert cli.main(["migrate", str(plan)]) == 0
    assert json.loads(capsys.readouterr().out)["benefits_added"] == 1
    assert db_session.query(Benefit).count() == 1

    assert cli.main(["migrate", str(plan), "--apply"]) == 0
    assert db_session.query(Benefit).count() == 2


def test_migrate_missing_plan_fails(tmp_path):
    assert cli.main(["migrate", str(tmp_path / "nope.yaml")]) == 1


def test_upgrade_db(monkeypatch):
    calls = []
    monkeypatch.setattr(cli, "run_migrations", lambda: calls.append("head"))
    assert cli.main(["upgrade-db"]) == 0
    assert calls == ["head"]


def test_command_required():
    with pytest.raises(SystemExit):
        cli.main([])
