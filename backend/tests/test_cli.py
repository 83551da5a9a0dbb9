# Overview: Pytest coverage for the Flask CLI command groups.

from sqlalchemy import update

from backoffice.extensions import db
from backoffice.models import Account, Company, Customer


def _run(app, *args):
    return app.test_cli_runner().invoke(args=list(args))


def test_companies_create_and_list(app):
    created = _run(app, "companies", "create", "--name", "Cli Bakery", "--code", "cli")

    assert created.exit_code == 0
    assert "PASS Created company: Cli Bakery" in created.output
    assert db.session.query(Company).filter_by(code="CLI").count() == 1

    listed = _run(app, "companies", "list")
    assert listed.exit_code == 0
    assert "Cli Bakery" in listed.output


def test_duplicate_company_code_fails(app, company):
    result = _run(app, "companies", "create", "--name", "Copycat", "--code", "ACME")

    assert result.exit_code == 1
    assert result.output.startswith("FAIL")


def test_accounts_seed_restores_missing_accounts(app, company):
    db.session.query(Account).filter_by(company_id=company.id, code="6090").delete()
    db.session.commit()

    result = _run(app, "accounts", "seed", "--company-id", str(company.id))

    assert result.exit_code == 0
    assert "Seeded 1 account(s)" in result.output


def test_accounts_seed_unknown_company(app, db_session):
    result = _run(app, "accounts", "seed", "--company-id", "999")
    assert result.exit_code == 1


def test_audits_pass_on_consistent_data(app, company, warehouse, customer, product, receive):
    receive(product, warehouse, 5, 400)

    for group in ("debts", "stock", "journal"):
        result = _run(app, "audit", group, "--company-id", str(company.id))
        assert result.exit_code == 0, result.output
        assert "no discrepancies" in result.output


def test_debt_audit_reports_drift(app, company, customer):
    # Bypass the ledger to simulate a corrupted balance
    db.session.execute(
        update(Customer.__table__).where(Customer.__table__.c.id == customer.id).values(debt_balance_cents=123)
    )
    db.session.commit()

    result = _run(app, "audit", "debts", "--company-id", str(company.id))

    assert result.exit_code == 1
    assert "FAIL Customer debts: 1 discrepancy(ies)" in result.output
    assert "Corner Shop" in result.output


def test_audit_unknown_company(app, db_session):
    result = _run(app, "audit", "journal", "--company-id", "999")

    assert result.exit_code == 1
    assert "not found" in result.output
