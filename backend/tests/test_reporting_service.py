"""
Return report tests (summary, detailed, analytics).
"""

from datetime import timedelta

import pytest

from retailhub.services import reporting_service, return_service
from retailhub.services.reporting_service import ReportError
from retailhub.time_utils import to_utc_z, utcnow


@pytest.fixture()
def returns(sale, sale_items, store, cashier, manager):
    """Two returns on the sale: 2 totes refunded (completed), 1 lamp as store credit (pending)."""
    refunded = return_service.create_return(
        sale_id=sale.id,
        items=[{"sale_item_id": sale_items["SKU-A"].id, "quantity": 2, "return_reason": "Wrong size"}],
        store_id=store.id,
        user_id=cashier.id,
    )
    return_service.update_return(refunded.id, user_id=manager.id, status="approved")
    return_service.update_return(refunded.id, user_id=manager.id, status="completed")

    credit = return_service.create_return(
        sale_id=sale.id,
        items=[{"sale_item_id": sale_items["SKU-B"].id, "quantity": 1, "return_reason": "Defective"}],
        store_id=store.id,
        user_id=cashier.id,
        refund_type="store_credit",
    )
    return refunded, credit


class TestSummaryReport:

    def test_totals(self, returns, store):
        report = reporting_service.return_reports(report_type="summary", store_id=store.id)
        data = report["data"]

        assert report["type"] == "summary"
        # 2 x 10.00 + tax = 22.00 and 1 x 25.00 + tax = 27.50
        assert data["summary"] == {
            "total_returns": 2,
            "total_refund_amount_cents": 4950,
            "average_refund_amount_cents": 2475,
        }
        by_type = {row["refund_type"]: row for row in data["refunds_by_type"]}
        assert by_type["refund"]["refund_amount_cents"] == 2200
        assert by_type["store_credit"]["count"] == 1

        by_status = {row["status"]: row["count"] for row in data["returns_by_status"]}
        assert by_status == {"completed": 1, "pending": 1}

        by_reason = {row["return_reason"]: row["quantity"] for row in data["returns_by_reason"]}
        assert by_reason == {"Wrong size": 2, "Defective": 1}

        top = data["top_returned_products"]
        assert top[0]["sku"] == "SKU-A"
        assert top[0]["quantity"] == 2

        assert len(data["returns_by_day"]) == 1
        assert data["returns_by_day"][0]["count"] == 2

    def test_date_range_excludes(self, returns):
        tomorrow = to_utc_z(utcnow() + timedelta(days=1))
        report = reporting_service.return_reports(start=tomorrow)
        assert report["data"]["summary"]["total_returns"] == 0
        assert report["data"]["summary"]["average_refund_amount_cents"] == 0

    def test_other_store_is_empty(self, returns, other_store):
        report = reporting_service.return_reports(store_id=other_store.id)
        assert report["data"]["summary"]["total_returns"] == 0


class TestOtherReports:

    def test_detailed(self, returns):
        data = reporting_service.return_reports(report_type="detailed")["data"]
        assert data["total_returns"] == 2
        assert data["total_refund_amount_cents"] == 4950
        assert all("items" in r for r in data["returns"])

    def test_analytics(self, returns, customer):
        data = reporting_service.return_reports(report_type="analytics")["data"]

        assert len(data["returns_by_month"]) == 1
        assert data["returns_by_month"][0]["count"] == 2
        assert {row["refund_type"] for row in data["refunds_by_method"]} == {"refund", "store_credit"}
        assert len(data["return_trends"]) == 2
        assert data["top_returning_customers"] == [{
            "customer_id": customer.id,
            "name": "Dana Buyer",
            "email": "dana@example.com",
            "count": 2,
            "refund_amount_cents": 4950,
        }]


class TestReportErrors:

    def test_invalid_type(self, app):
        with pytest.raises(ReportError, match="Invalid report type"):
            reporting_service.return_reports(report_type="pie")

    def test_unknown_store(self, app):
        with pytest.raises(ReportError, match="Store not found"):
            reporting_service.return_reports(store_id=999)

    def test_bad_dates(self, app):
        with pytest.raises(ReportError):
            reporting_service.return_reports(start="last tuesday")

    def test_no_returns(self, app):
        report = reporting_service.return_reports()
        assert report["data"]["summary"]["total_returns"] == 0
