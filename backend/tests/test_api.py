"""
HTTP contract tests: status codes, the {"error", "kind", "details"} error
shape, and the X-Acting-User header on workflow endpoints.
"""

import pytest


ACTING_USER = {"X-Acting-User": "5"}


def _return_body(invoice_id, product_id, quantity):
    return {
        "original_invoice_id": invoice_id,
        "return_type": "PARTIAL_REFUND",
        "refund_method": "CASH",
        "return_reason": "Wrong size",
        "items": [{"product_id": product_id, "returned_quantity": quantity, "reason": "CUSTOMER_REQUEST"}],
    }


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"


class TestErrorShape:
    def test_validation_error(self, client, db_session, account):
        response = client.post(
            '/api/transactions',
            json={"account_id": account.id, "amount_cents": 0, "transaction_type": "CASH_RECEIVED"},
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["kind"] == "validation_error"
        assert "amount_cents" in body["error"]
        assert "details" in body

    def test_not_found(self, client, db_session):
        response = client.post(
            '/api/transactions',
            json={"account_id": 999, "amount_cents": 100, "transaction_type": "CASH_RECEIVED"},
        )

        assert response.status_code == 404
        assert response.get_json()["details"] == {"account_id": 999}

    def test_conflict(self, client, db_session, product):
        response = client.post(f'/api/products/{product.id}/adjust', json={"delta": -11})

        assert response.status_code == 409
        assert response.get_json()["kind"] == "conflict"

    def test_invalid_json(self, client, db_session):
        response = client.post('/api/products', data="not json", content_type="application/json")

        assert response.status_code == 400


class TestCatalogAndParties:
    def test_product_roundtrip(self, client, db_session):
        created = client.post('/api/products', json={"name": "Mug", "price_cents": 900, "stock_quantity": 3})
        assert created.status_code == 201
        product_id = created.get_json()["id"]

        adjusted = client.post(f'/api/products/{product_id}/adjust', json={"delta": 2})
        assert adjusted.get_json()["stock_quantity"] == 5

        low = client.get('/api/products?low_stock=5')
        assert [p["id"] for p in low.get_json()["items"]] == [product_id]

    def test_adjust_requires_delta(self, client, db_session, product):
        response = client.post(f'/api/products/{product.id}/adjust', json={})
        assert response.status_code == 400

    def test_customers_and_suppliers(self, client, db_session):
        customer = client.post('/api/customers', json={"name": "Ada"})
        supplier = client.post('/api/suppliers', json={"name": "Acme"})

        assert customer.status_code == 201
        assert supplier.status_code == 201
        assert client.get(f'/api/customers/{customer.get_json()["id"]}').status_code == 200
        assert client.get('/api/suppliers/9999').status_code == 404


class TestAccountsAndTransactions:
    def test_transaction_updates_balance_and_entries(self, client, db_session, account):
        response = client.post(
            '/api/transactions',
            json={"account_id": account.id, "amount_cents": 500, "transaction_type": "CASH_RECEIVED"},
            headers=ACTING_USER,
        )
        assert response.status_code == 201
        assert response.get_json()["created_by_user_id"] == 5

        client.post(
            '/api/transactions',
            json={"account_id": account.id, "amount_cents": 200, "transaction_type": "EXPENSE_VOUCHER"},
        )

        assert client.get(f'/api/accounts/{account.id}').get_json()["balance_cents"] == 300
        entries = client.get(f'/api/accounts/{account.id}/entries').get_json()["items"]
        assert [e["balance_cents"] for e in entries] == [500, 300]
        assert client.get(f'/api/accounts/{account.id}/verify').get_json()["consistent"] is True

    def test_bad_acting_user_header(self, client, db_session, account):
        response = client.post(
            '/api/transactions',
            json={"account_id": account.id, "amount_cents": 500, "transaction_type": "CASH_RECEIVED"},
            headers={"X-Acting-User": "admin"},
        )
        assert response.status_code == 400

    def test_delete_account_with_history(self, client, db_session, account):
        client.post(
            '/api/transactions',
            json={"account_id": account.id, "amount_cents": 500, "transaction_type": "CASH_RECEIVED"},
        )
        assert client.delete(f'/api/accounts/{account.id}').status_code == 409


class TestSalesApi:
    def test_sale_lifecycle(self, client, db_session, customer, product):
        assert client.get('/api/sales/next-invoice-number').get_json()["invoice_number"] == "INV-5001"

        created = client.post(
            '/api/sales',
            json={
                "customer_id": customer.id,
                "items": [{"product_id": product.id, "quantity": 3, "price_at_sale_cents": 1500}],
            },
        )
        assert created.status_code == 201
        sale = created.get_json()
        assert sale["invoice_number"] == "INV-5001"
        assert client.get(f'/api/products/{product.id}').get_json()["stock_quantity"] == 7

        duplicate = client.post(
            '/api/sales',
            json={
                "customer_id": customer.id,
                "invoice_number": "INV-5001",
                "items": [{"product_id": product.id, "quantity": 1, "price_at_sale_cents": 1500}],
            },
        )
        assert duplicate.status_code == 409

        assert client.delete(f'/api/sales/{sale["id"]}').status_code == 204
        assert client.get(f'/api/products/{product.id}').get_json()["stock_quantity"] == 10

    def test_oversized_line_is_a_400(self, client, db_session, customer, product):
        response = client.post(
            '/api/sales',
            json={
                "customer_id": customer.id,
                "items": [{"product_id": product.id, "quantity": 10**12, "price_at_sale_cents": 999_999_999}],
            },
        )

        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation_error"

    def test_bad_date_filter(self, client, db_session):
        response = client.get('/api/sales?start_date=yesterday')
        assert response.status_code == 400


class TestReturnsApi:
    @pytest.fixture
    def invoice_id(self, client, db_session, customer, product):
        response = client.post(
            '/api/invoices',
            json={"customer_id": customer.id, "status": "FINALIZED", "items": [{"product_id": product.id, "quantity": 3}]},
            headers=ACTING_USER,
        )
        assert response.status_code == 201
        return response.get_json()["id"]

    def test_full_workflow(self, client, product, invoice_id):
        created = client.post('/api/returns', json=_return_body(invoice_id, product.id, 2), headers=ACTING_USER)
        assert created.status_code == 201
        return_id = created.get_json()["id"]

        approved = client.post(f'/api/returns/{return_id}/approve', json={"notes": "ok"}, headers=ACTING_USER)
        assert approved.status_code == 200
        assert approved.get_json()["approved_by_user_id"] == 5

        processed = client.post(f'/api/returns/{return_id}/process', json={}, headers=ACTING_USER)
        assert processed.status_code == 200
        assert processed.get_json()["status"] == "COMPLETED"
        assert client.get(f'/api/products/{product.id}').get_json()["stock_quantity"] == 9

        again = client.post(f'/api/returns/{return_id}/process', json={}, headers=ACTING_USER)
        assert again.status_code == 409
        assert again.get_json()["kind"] == "invalid_state_transition"

        over = client.post('/api/returns', json=_return_body(invoice_id, product.id, 2))
        assert over.status_code == 409
        assert over.get_json()["details"]["remaining"] == 1

        stats = client.get('/api/returns/statistics').get_json()
        assert stats["completed_returns"] == 1

    def test_approve_requires_acting_user(self, client, product, invoice_id):
        created = client.post('/api/returns', json=_return_body(invoice_id, product.id, 1))
        return_id = created.get_json()["id"]

        response = client.post(f'/api/returns/{return_id}/approve', json={})

        assert response.status_code == 400
        assert "X-Acting-User" in response.get_json()["error"]
        assert client.get(f'/api/returns/{return_id}').get_json()["status"] == "PENDING"

    def test_reject_and_delete(self, client, product, invoice_id):
        return_id = client.post('/api/returns', json=_return_body(invoice_id, product.id, 1)).get_json()["id"]

        missing_reason = client.post(f'/api/returns/{return_id}/reject', json={})
        assert missing_reason.status_code == 400

        rejected = client.post(f'/api/returns/{return_id}/reject', json={"rejection_reason": "No receipt"})
        assert rejected.get_json()["status"] == "REJECTED"

        assert client.delete(f'/api/returns/{return_id}').status_code == 204
        assert client.get(f'/api/returns/{return_id}').status_code == 404

    def test_adjust_inventory_must_be_a_boolean(self, client, product, invoice_id):
        """
        SCENARIO: process is called with the string "false" for adjust_inventory
        EXPECTED: 400 and the return stays APPROVED with stock untouched;
        a real false then completes the return without restocking
        """
        return_id = client.post('/api/returns', json=_return_body(invoice_id, product.id, 2)).get_json()["id"]
        client.post(f'/api/returns/{return_id}/approve', headers=ACTING_USER)

        response = client.post(
            f'/api/returns/{return_id}/process', json={"adjust_inventory": "false"}, headers=ACTING_USER
        )

        assert response.status_code == 400
        assert response.get_json()["details"] == {"field": "adjust_inventory"}
        body = client.get(f'/api/returns/{return_id}').get_json()
        assert body["status"] == "APPROVED"
        assert body["inventory_adjusted"] is False
        assert client.get(f'/api/products/{product.id}').get_json()["stock_quantity"] == 7

        processed = client.post(
            f'/api/returns/{return_id}/process', json={"adjust_inventory": False}, headers=ACTING_USER
        )
        assert processed.status_code == 200
        assert processed.get_json()["inventory_adjusted"] is False
        assert client.get(f'/api/products/{product.id}').get_json()["stock_quantity"] == 7

    @pytest.mark.parametrize("action", ["approve", "reject", "process"])
    def test_workflow_body_must_be_an_object(self, client, product, invoice_id, action):
        return_id = client.post('/api/returns', json=_return_body(invoice_id, product.id, 1)).get_json()["id"]

        response = client.post(f'/api/returns/{return_id}/{action}', json=["notes"], headers=ACTING_USER)

        assert response.status_code == 400
        assert response.get_json()["kind"] == "validation_error"
        assert client.get(f'/api/returns/{return_id}').get_json()["status"] == "PENDING"

    def test_patch_locked_fields(self, client, product, invoice_id):
        return_id = client.post('/api/returns', json=_return_body(invoice_id, product.id, 1)).get_json()["id"]
        client.post(f'/api/returns/{return_id}/approve', headers=ACTING_USER)
        client.post(f'/api/returns/{return_id}/process', headers=ACTING_USER)

        response = client.patch(f'/api/returns/{return_id}', json={"refund_method": "CARD"})

        assert response.status_code == 409


class TestReportsApi:
    def test_customer_ledger(self, client, db_session, customer, customer_account, product):
        client.post(
            '/api/sales',
            json={
                "customer_id": customer.id,
                "sale_date": "2024-01-10T10:00:00Z",
                "items": [{"product_id": product.id, "quantity": 2, "price_at_sale_cents": 1500}],
            },
        )
        client.post(
            '/api/transactions',
            json={
                "account_id": customer_account.id,
                "amount_cents": 1000,
                "transaction_type": "CASH_RECEIVED",
                "transaction_date": "2024-02-01T10:00:00Z",
            },
        )

        response = client.get(f'/api/reports/ledger/customer/{customer.id}?start_date=2024-02-01&end_date=2024-02-29')

        assert response.status_code == 200
        ledger = response.get_json()
        assert ledger["previous_balance_cents"] == 3000
        assert ledger["running_balance_cents"] == 2000

    def test_unknown_entity_type(self, client, db_session):
        assert client.get('/api/reports/ledger/vendor/1').status_code == 400
        assert client.get('/api/reports/balances/vendor').status_code == 400
