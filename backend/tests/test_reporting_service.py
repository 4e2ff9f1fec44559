"""
Derived ledger tests: previous balance, running balance and row order are
recomputed from sales, purchases and transactions on every read.
"""

from datetime import datetime

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.models import LedgerEntry
from shopledger.services import ledger_service, purchase_service, reporting_service, sales_service, transaction_service


def _sale(customer, product, quantity, when, price_cents=1500):
    return sales_service.create_sale(
        {
            "customer_id": customer.id,
            "sale_date": when,
            "items": [{"product_id": product.id, "quantity": quantity, "price_at_sale_cents": price_cents}],
        }
    )


def _tx(account, transaction_type, amount, when):
    return transaction_service.create_transaction(
        {
            "account_id": account.id,
            "amount_cents": amount,
            "transaction_type": transaction_type,
            "transaction_date": when,
        }
    )


@pytest.fixture
def customer_history(db_session, customer, customer_account, product):
    """
    Jan: sale 45.00, cash 10.00       -> owes 35.00 before February
    Feb: sale 30.00, cash 20.00, voucher 5.00
    """
    _sale(customer, product, 3, "2024-01-10T10:00:00Z")
    _tx(customer_account, "CASH_RECEIVED", 1000, "2024-01-12T10:00:00Z")
    _sale(customer, product, 2, "2024-02-05T10:00:00Z")
    _tx(customer_account, "CASH_RECEIVED", 2000, "2024-02-06T10:00:00Z")
    _tx(customer_account, "EXPENSE_VOUCHER", 500, "2024-02-07T10:00:00Z")
    return customer


class TestCustomerLedger:
    def test_previous_and_running_balance(self, db_session, customer_history):
        """
        SCENARIO: customer ledger for February
        EXPECTED: previous 35.00; sale +30.00, cash -20.00, voucher +5.00 -> 50.00
        """
        ledger = reporting_service.compute_ledger("customer", customer_history.id, "2024-02-01", "2024-02-28")

        assert ledger["previous_balance_cents"] == 3500
        assert [(e["source"], e["debit_cents"], e["credit_cents"], e["balance_cents"]) for e in ledger["entries"]] == [
            ("sale", 3000, 0, 6500),
            ("transaction", 0, 2000, 4500),
            ("transaction", 500, 0, 5000),
        ]
        assert ledger["running_balance_cents"] == 5000
        assert ledger["total_debit_cents"] == 3500
        assert ledger["total_credit_cents"] == 2000
        assert ledger["name"] == customer_history.name
        assert ledger["start_date"] == "2024-02-01T00:00:00Z"

    def test_without_range_starts_from_zero(self, db_session, customer_history):
        ledger = reporting_service.compute_ledger("customer", customer_history.id)

        assert ledger["previous_balance_cents"] == 0
        assert len(ledger["entries"]) == 5
        assert ledger["running_balance_cents"] == 5000

    def test_end_date_is_inclusive(self, db_session, customer, product):
        _sale(customer, product, 1, "2024-02-28T23:30:00Z")

        ledger = reporting_service.compute_ledger("customer", customer.id, "2024-02-01", "2024-02-28")

        assert [e["debit_cents"] for e in ledger["entries"]] == [1500]

    def test_documents_sort_before_transactions_at_same_time(self, db_session, customer, customer_account, product):
        _tx(customer_account, "CASH_RECEIVED", 500, "2024-03-01T12:00:00Z")
        _sale(customer, product, 1, "2024-03-01T12:00:00Z")

        ledger = reporting_service.compute_ledger("customer", customer.id)

        assert [e["source"] for e in ledger["entries"]] == ["sale", "transaction"]
        assert [e["balance_cents"] for e in ledger["entries"]] == [1500, 1000]

    def test_balance_matches_ledger(self, db_session, customer_history):
        assert reporting_service.get_entity_balance("customer", customer_history.id) == 5000
        assert reporting_service.get_entity_balance("customer", customer_history.id, "2024-01-31") == 3500

    def test_list_balances(self, db_session, customer_history):
        balances = reporting_service.list_balances("customer")
        assert balances == [{"id": customer_history.id, "name": customer_history.name, "balance_cents": 5000}]


class TestSupplierLedger:
    def test_purchases_credit_and_vouchers_settle(self, db_session, supplier, supplier_account, product):
        purchase_service.create_purchase(
            {
                "supplier_id": supplier.id,
                "purchase_date": "2024-01-05T09:00:00Z",
                "items": [{"product_id": product.id, "quantity": 5, "price_at_purchase_cents": 800}],
            }
        )
        _tx(supplier_account, "EXPENSE_VOUCHER", 1500, "2024-01-20T09:00:00Z")
        _tx(supplier_account, "CASH_RECEIVED", 200, "2024-02-02T09:00:00Z")

        ledger = reporting_service.compute_ledger("supplier", supplier.id, "2024-02-01")

        assert ledger["previous_balance_cents"] == 2500
        assert [(e["debit_cents"], e["credit_cents"], e["balance_cents"]) for e in ledger["entries"]] == [
            (0, 200, 2700),
        ]
        assert ledger["running_balance_cents"] == 2700

        full = reporting_service.compute_ledger("supplier", supplier.id)
        assert [(e["debit_cents"], e["credit_cents"]) for e in full["entries"]] == [
            (0, 4000),
            (1500, 0),
            (0, 200),
        ]


class TestAccountLedger:
    def test_replays_entries(self, db_session, account):
        _tx(account, "CASH_RECEIVED", 500, "2024-01-01T08:00:00Z")
        _tx(account, "EXPENSE_VOUCHER", 200, "2024-01-15T08:00:00Z")
        _tx(account, "CASH_RECEIVED", 300, "2024-02-10T08:00:00Z")

        ledger = reporting_service.compute_ledger("account", account.id, "2024-02-01", "2024-02-29")

        assert ledger["previous_balance_cents"] == 300
        assert [e["balance_cents"] for e in ledger["entries"]] == [600]
        assert ledger["running_balance_cents"] == 600
        assert reporting_service.get_entity_balance("account", account.id) == 600


    def test_same_date_entries_replay_in_creation_order(self, db_session, account):
        """
        SCENARIO: a transaction posting and a direct posting share one business date;
        the direct posting is created second and carries no transaction id
        EXPECTED: rows follow (date, created_at, id), so the transaction comes first
        """
        _tx(account, "CASH_RECEIVED", 500, "2024-03-01T08:00:00Z")
        ledger_service.post_entry(
            account_id=account.id,
            amount_cents=700,
            direction="DEBIT",
            transaction_date=datetime(2024, 3, 1, 8, 0),
        )

        ledger = reporting_service.compute_ledger("account", account.id)

        assert [e["source_id"] is None for e in ledger["entries"]] == [False, True]
        assert [e["balance_cents"] for e in ledger["entries"]] == [500, -200]


class TestReportIsReadOnly:
    def test_reads_do_not_write(self, db_session, customer_history, customer_account):
        entries_before = db_session.query(LedgerEntry).count()

        reporting_service.compute_ledger("customer", customer_history.id, "2024-02-01")
        reporting_service.compute_ledger("account", customer_account.id)

        assert not db_session.new
        assert not db_session.dirty
        assert db_session.query(LedgerEntry).count() == entries_before


class TestReportErrors:
    def test_unknown_entity_type(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.compute_ledger("vendor", 1)

    def test_unknown_entity(self, db_session):
        with pytest.raises(NotFoundError):
            reporting_service.compute_ledger("customer", 404)

    def test_end_before_start(self, db_session, customer):
        with pytest.raises(ValidationError):
            reporting_service.compute_ledger("customer", customer.id, "2024-03-01", "2024-02-01")

    def test_malformed_date(self, db_session, customer):
        with pytest.raises(ValidationError):
            reporting_service.compute_ledger("customer", customer.id, "first of march")
