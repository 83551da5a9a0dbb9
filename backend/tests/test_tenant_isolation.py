# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

Two companies with their own locations, items and customers. Verifies that:
1. Ids from another company behave exactly like missing ids
2. Listings and balances only see the caller's company
3. The API refuses requests without a valid tenant header
"""

import pytest

from backoffice.errors import TenantAccessError
from backoffice.services import (
    catalog_service,
    collection_service,
    debt_service,
    inventory_service,
    journal_service,
    order_service,
    posting_rules,
)
from backoffice.services.tenant_service import require_company, require_company_record
from backoffice.models import Customer


@pytest.fixture
def foreign_customer(other_company):
    return catalog_service.create_customer(company_id=other_company.id, payload={"name": "Beta Kiosk"})


@pytest.fixture
def foreign_warehouse(other_company):
    return catalog_service.create_location(company_id=other_company.id, payload={"name": "Beta Depot"})


class TestTenantServiceHelpers:
    """Test tenant_service helper functions."""

    def test_record_in_own_company_passes(self, company, customer):
        assert require_company_record(Customer, customer.id, company.id).id == customer.id

    def test_record_from_other_company_is_not_found(self, company, foreign_customer):
        with pytest.raises(TenantAccessError):
            require_company_record(Customer, foreign_customer.id, company.id)

    def test_missing_and_malformed_ids_are_not_found(self, company):
        with pytest.raises(TenantAccessError):
            require_company_record(Customer, 99999, company.id)
        with pytest.raises(TenantAccessError):
            require_company_record(Customer, "abc", company.id)
        with pytest.raises(TenantAccessError):
            require_company_record(Customer, None, company.id)

    def test_unknown_company_is_rejected(self, db_session):
        with pytest.raises(TenantAccessError):
            require_company(12345)


class TestCrossTenantOperations:
    """Business operations refuse ids owned by another company."""

    def test_order_for_foreign_customer_is_refused(self, company, warehouse, product, foreign_customer, receive):
        receive(product, warehouse, 5, 400)

        with pytest.raises(TenantAccessError):
            order_service.create_order(
                company_id=company.id,
                customer_id=foreign_customer.id,
                location_id=warehouse.id,
                lines=[{"item_id": product.id, "quantity": 1}],
            )
        assert inventory_service.get_quantity_on_hand(company.id, product.id, warehouse.id) == 5

    def test_stock_cannot_be_received_into_foreign_location(self, company, product, foreign_warehouse):
        with pytest.raises(TenantAccessError):
            inventory_service.record_opening_stock(
                company_id=company.id,
                item_id=product.id,
                location_id=foreign_warehouse.id,
                quantity=5,
                unit_cost_cents=400,
            )

    def test_collection_against_foreign_customer_is_refused(self, company, foreign_customer):
        with pytest.raises(TenantAccessError):
            collection_service.create_collection(
                company_id=company.id, customer_id=foreign_customer.id, amount_cents=100
            )
        assert debt_service.get_debt(foreign_customer.company_id, foreign_customer.id) == 0

    def test_listings_and_balances_are_per_company(self, company, other_company, customer, foreign_customer):
        collection_service.create_collection(
            company_id=other_company.id, customer_id=foreign_customer.id, amount_cents=700, payment_type="bank"
        )

        assert [c.id for c in catalog_service.list_customers(company.id)] == [customer.id]
        assert journal_service.get_account_balance(company.id, posting_rules.BANK) == 0
        assert journal_service.get_account_balance(other_company.id, posting_rules.BANK) == 700


class TestTenantHeaders:
    """The API derives the tenant from X-Company-Id only."""

    def test_missing_header_is_unauthorized(self, client, company):
        response = client.get("/api/customers")
        assert response.status_code == 401

    def test_unknown_company_header_is_unauthorized(self, client, company):
        response = client.get("/api/customers", headers={"X-Company-Id": "99999"})
        assert response.status_code == 401

    def test_foreign_id_through_api_is_not_found(self, client, headers, foreign_customer):
        response = client.get(f"/api/customers/{foreign_customer.id}/debt", headers=headers)
        assert response.status_code == 404

    def test_listing_only_shows_own_customers(self, client, headers, customer, foreign_customer):
        response = client.get("/api/customers", headers=headers)

        assert response.status_code == 200
        assert [c["id"] for c in response.get_json()["items"]] == [customer.id]
