"""Read-only financial records served by the activities."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

Record = dict[str, Any]

CURRENT_CUSTOMER_ID = "customer-123"


@dataclass(slots=True)
class FinancialDataset:
    """Backing collections keyed the way the activities look them up.

    Payment networks and asset transfer networks are separate collections so
    either can be replaced without touching the other.
    """

    customers: list[Record] = field(default_factory=list)
    accounts: list[Record] = field(default_factory=list)
    account_contacts: dict[str, Record] = field(default_factory=dict)
    account_statements: dict[str, list[Record]] = field(default_factory=dict)
    account_transactions: dict[str, list[Record]] = field(default_factory=dict)
    account_payment_networks: dict[str, list[Record]] = field(default_factory=dict)
    account_asset_transfer_networks: dict[str, list[Record]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, path: Path) -> FinancialDataset:
        """Load a dataset from a JSON document with one key per collection."""

        payload = json.loads(path.read_text("utf-8"))
        if not isinstance(payload, dict):
            raise ValueError(f"Dataset file must contain a JSON object: {path}")
        unknown = set(payload) - {item.name for item in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown dataset collections in {path}: {sorted(unknown)}")
        return cls(**payload)


def sample_dataset() -> FinancialDataset:
    """Small fixture used by the CLI and tests."""

    payment_networks = {
        "acc-checking-001": [
            {
                "bankId": "021000021",
                "identifier": "1234567890",
                "type": "US_ACH",
                "transferIn": True,
                "transferOut": True,
            },
            {
                "bankId": "021000021",
                "identifier": "1234567890",
                "type": "US_FEDWIRE",
                "transferIn": True,
                "transferOut": False,
            },
        ],
    }
    return FinancialDataset(
        customers=[
            {
                "customerId": CURRENT_CUSTOMER_ID,
                "name": "Jane Doe",
                "email": "jane.doe@example.com",
                "status": "ACTIVE",
                "createdDate": "2021-03-15",
                "preferences": {"notifications": True, "twoFactorAuth": True},
            },
            {
                "customerId": "customer-456",
                "name": "John Roe",
                "email": "john.roe@example.com",
                "status": "INACTIVE",
                "createdDate": "2019-11-02",
                "preferences": {"notifications": False, "twoFactorAuth": False},
            },
        ],
        accounts=[
            {
                "accountCategory": "DEPOSIT_ACCOUNT",
                "accountId": "acc-checking-001",
                "accountNumberDisplay": "...7890",
                "productName": "Everyday Checking",
                "status": "OPEN",
                "currency": {"currencyCode": "USD"},
                "accountType": "CHECKING",
                "currentBalance": 2450.75,
                "availableBalance": 2300.75,
            },
            {
                "accountCategory": "LOC_ACCOUNT",
                "accountId": "acc-card-002",
                "accountNumberDisplay": "...4321",
                "productName": "Rewards Card",
                "status": "OPEN",
                "currency": {"currencyCode": "USD"},
                "accountType": "CREDITCARD",
                "currentBalance": 512.4,
                "availableCredit": 4487.6,
                "creditLine": 5000,
            },
        ],
        account_contacts={
            "acc-checking-001": {
                "holders": [
                    {"relationship": "PRIMARY", "name": {"first": "Jane", "last": "Doe"}},
                ],
                "emails": ["jane.doe@example.com"],
                "addresses": [
                    {
                        "line1": "1 Main St",
                        "city": "Springfield",
                        "region": "IL",
                        "postalCode": "62701",
                        "country": "US",
                    },
                ],
                "telephones": [{"type": "HOME", "country": "1", "number": "5555550100"}],
            },
        },
        account_statements={
            "acc-checking-001": [
                {
                    "accountId": "acc-checking-001",
                    "statementId": f"stmt-2024-{month:02d}",
                    "statementDate": f"2024-{month:02d}-28",
                    "description": f"Statement for 2024-{month:02d}",
                    "links": [],
                    "status": "AVAILABLE",
                }
                for month in range(1, 7)
            ],
        },
        account_transactions={
            "acc-checking-001": [
                {
                    "accountCategory": "DEPOSIT_ACCOUNT",
                    "transactionType": "DEBIT",
                    "transactionId": f"txn-{index:03d}",
                    "postedTimestamp": f"2024-05-{index:02d}T12:00:00Z",
                    "transactionTimestamp": f"2024-05-{index:02d}T11:58:00Z",
                    "description": f"Card purchase {index}",
                    "debitCreditMemo": "DEBIT",
                    "status": "POSTED",
                    "amount": 10.0 * index,
                }
                for index in range(1, 11)
            ],
        },
        account_payment_networks=payment_networks,
        account_asset_transfer_networks={
            account_id: [dict(network) for network in networks]
            for account_id, networks in payment_networks.items()
        },
    )
