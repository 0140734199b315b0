from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from fdx_dispatch.activities.dataset import FinancialDataset, sample_dataset
from fdx_dispatch.activities.financial import (
    OPERATION_NAMES,
    FinancialDataActivities,
    register_financial_activities,
)
from fdx_dispatch.engine.clock import ManualClock
from fdx_dispatch.engine.dispatcher import Dispatcher
from fdx_dispatch.engine.errors import ClassifiedFailure, ErrorKind
from fdx_dispatch.engine.registry import ActivityRegistry

pytestmark = [
    allure.epic("Financial Data"),
    allure.feature("Activities"),
]


@pytest.fixture()
def activities(manual_clock: ManualClock) -> FinancialDataActivities:
    return FinancialDataActivities(sample_dataset(), clock=manual_clock)


def test_current_customer_is_fixed(activities: FinancialDataActivities) -> None:
    customer = activities.get_current_customer()

    assert customer is not None
    assert customer["customerId"] == "customer-123"


def test_point_lookups_return_none_when_absent(activities: FinancialDataActivities) -> None:
    assert activities.get_customer_by_id("customer-999") is None
    assert activities.get_account_by_id("acc-missing") is None
    assert activities.get_account_contact_by_id("acc-card-002") is None
    assert activities.get_account_statement_by_id("acc-checking-001", "stmt-1999-01") is None


def test_point_lookups_find_records(activities: FinancialDataActivities) -> None:
    assert activities.get_customer_by_id("customer-456")["status"] == "INACTIVE"
    assert activities.get_account_by_id("acc-card-002")["accountType"] == "CREDITCARD"
    assert activities.get_account_contact_by_id("acc-checking-001")["emails"] == [
        "jane.doe@example.com",
    ]
    statement = activities.get_account_statement_by_id("acc-checking-001", "stmt-2024-03")
    assert statement["statementDate"] == "2024-03-28"


def test_customers_can_be_filtered_by_status(activities: FinancialDataActivities) -> None:
    assert len(activities.get_customers()) == 2
    active = activities.get_customers({"status": "ACTIVE"})

    assert [customer["customerId"] for customer in active] == ["customer-123"]


def test_accounts_are_paginated(activities: FinancialDataActivities) -> None:
    page = activities.get_accounts(offset=1, limit=1)

    assert page["total"] == 2
    assert [account["accountId"] for account in page["accounts"]] == ["acc-card-002"]


def test_statements_time_window_is_inclusive(activities: FinancialDataActivities) -> None:
    page = activities.get_account_statements(
        "acc-checking-001",
        start_time="2024-02-28",
        end_time="2024-04-28T00:00:00Z",
    )

    assert page["total"] == 3
    assert [item["statementId"] for item in page["statements"]] == [
        "stmt-2024-02",
        "stmt-2024-03",
        "stmt-2024-04",
    ]


def test_transactions_window_and_pagination(activities: FinancialDataActivities) -> None:
    page = activities.get_account_transactions(
        "acc-checking-001",
        offset=2,
        limit=3,
        start_time="2024-05-03T00:00:00Z",
    )

    assert page["total"] == 8
    assert [item["transactionId"] for item in page["transactions"]] == [
        "txn-005",
        "txn-006",
        "txn-007",
    ]


def test_unknown_account_has_empty_collections(activities: FinancialDataActivities) -> None:
    assert activities.get_account_transactions("acc-missing") == {"transactions": [], "total": 0}
    assert activities.get_payment_networks("acc-missing") == {"paymentNetworks": [], "total": 0}


def test_payment_and_asset_transfer_networks_are_separate(
    activities: FinancialDataActivities,
) -> None:
    payment = activities.get_payment_networks("acc-checking-001")
    transfer = activities.get_asset_transfer_networks("acc-checking-001", limit=1)

    assert payment["total"] == 2
    assert transfer["total"] == 2
    assert len(transfer["assetTransferNetworks"]) == 1

    activities.dataset.account_asset_transfer_networks["acc-checking-001"].clear()
    assert activities.get_payment_networks("acc-checking-001")["total"] == 2


def test_invalid_time_bound_is_non_retryable(activities: FinancialDataActivities) -> None:
    with pytest.raises(ClassifiedFailure) as caught:
        activities.get_account_transactions("acc-checking-001", start_time="yesterday")

    assert caught.value.kind == ErrorKind.NON_RETRYABLE
    assert "yesterday" in caught.value.message


def test_inverted_time_window_is_non_retryable(activities: FinancialDataActivities) -> None:
    with pytest.raises(ClassifiedFailure, match="start_time"):
        activities.get_account_statements(
            "acc-checking-001",
            start_time="2024-06-01",
            end_time="2024-01-01",
        )


def test_lookups_pay_simulated_latency_through_clock(manual_clock: ManualClock) -> None:
    activities = FinancialDataActivities(sample_dataset(), clock=manual_clock, latency_scale=2.0)

    activities.get_customer_by_id("customer-123")
    activities.get_accounts()

    assert manual_clock.sleeps == [pytest.approx(0.1), pytest.approx(0.2)]


def test_zero_latency_scale_skips_sleeping(manual_clock: ManualClock) -> None:
    activities = FinancialDataActivities(sample_dataset(), clock=manual_clock, latency_scale=0)

    activities.get_current_customer()

    assert manual_clock.sleeps == []


def test_registration_covers_every_operation(activities: FinancialDataActivities) -> None:
    registry = register_financial_activities(ActivityRegistry(), activities, timeout_seconds=5.0)

    assert registry.names() == sorted(OPERATION_NAMES)
    assert len(registry) == 11
    assert registry.resolve("get_accounts").timeout_seconds == 5.0


def test_activities_run_through_dispatcher(manual_clock: ManualClock, drain) -> None:
    activities = FinancialDataActivities(sample_dataset(), clock=manual_clock)
    registry = register_financial_activities(ActivityRegistry(), activities)
    dispatcher = Dispatcher(registry, clock=manual_clock, attempt_timeout_seconds=None)
    handle = dispatcher.submit("get_account_by_id", ["acc-checking-001"])

    drain(dispatcher.create_worker("worker-0"), manual_clock)

    assert handle.result(timeout=0)["productName"] == "Everyday Checking"


def test_dataset_loads_from_json(tmp_path: Path) -> None:
    path = tmp_path / "dataset.json"
    path.write_text(
        json.dumps({"customers": [{"customerId": "customer-123", "status": "ACTIVE"}]}),
        encoding="utf-8",
    )

    dataset = FinancialDataset.from_json(path)

    assert dataset.customers[0]["customerId"] == "customer-123"
    assert dataset.accounts == []


def test_dataset_rejects_unknown_collections(tmp_path: Path) -> None:
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps({"loans": []}), encoding="utf-8")

    with pytest.raises(ValueError, match="loans"):
        FinancialDataset.from_json(path)
