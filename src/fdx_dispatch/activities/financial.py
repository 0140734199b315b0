"""Financial-data activities executed by the dispatch engine."""

from __future__ import annotations

from datetime import UTC, datetime

from fdx_dispatch.activities.dataset import CURRENT_CUSTOMER_ID, FinancialDataset, Record
from fdx_dispatch.engine.clock import Clock, SystemClock
from fdx_dispatch.engine.errors import ClassifiedFailure, ErrorKind
from fdx_dispatch.engine.registry import ActivityRegistry
from fdx_dispatch.engine.retry_policy import RetryPolicy

# Simulated backing-store latency per lookup shape, in seconds.
_POINT_LOOKUP_LATENCY = 0.05
_CURRENT_CUSTOMER_LATENCY = 0.075
_COLLECTION_LATENCY = 0.1


class FinancialDataActivities:
    """Lookups over a read-only ``FinancialDataset``.

    Every lookup pays a simulated latency through the injected clock, so tests
    with a manual clock run instantly. Set ``latency_scale`` to 0 to disable it.
    """

    def __init__(
        self,
        dataset: FinancialDataset,
        *,
        clock: Clock | None = None,
        latency_scale: float = 1.0,
    ) -> None:
        self.dataset = dataset
        self._clock = clock or SystemClock()
        self._latency_scale = latency_scale

    def get_current_customer(self) -> Record | None:
        self._simulate_latency(_CURRENT_CUSTOMER_LATENCY)
        return _find(self.dataset.customers, "customerId", CURRENT_CUSTOMER_ID)

    def get_customer_by_id(self, customer_id: str) -> Record | None:
        self._simulate_latency(_POINT_LOOKUP_LATENCY)
        return _find(self.dataset.customers, "customerId", customer_id)

    def get_customers(self, filters: dict[str, str] | None = None) -> list[Record]:
        self._simulate_latency(_COLLECTION_LATENCY)
        customers = list(self.dataset.customers)
        status = (filters or {}).get("status")
        if status:
            customers = [customer for customer in customers if customer.get("status") == status]
        return customers

    def get_accounts(self, offset: int = 0, limit: int = 10) -> dict[str, object]:
        self._simulate_latency(_COLLECTION_LATENCY)
        accounts = self.dataset.accounts
        return {"accounts": _page(accounts, offset, limit), "total": len(accounts)}

    def get_account_by_id(self, account_id: str) -> Record | None:
        self._simulate_latency(_POINT_LOOKUP_LATENCY)
        return _find(self.dataset.accounts, "accountId", account_id)

    def get_account_contact_by_id(self, account_id: str) -> Record | None:
        self._simulate_latency(_POINT_LOOKUP_LATENCY)
        return self.dataset.account_contacts.get(account_id)

    def get_account_statements(  # noqa: PLR0913
        self,
        account_id: str,
        offset: int = 0,
        limit: int = 100,
        start_time: str = "",
        end_time: str = "",
    ) -> dict[str, object]:
        self._simulate_latency(_COLLECTION_LATENCY)
        statements = _within_window(
            self.dataset.account_statements.get(account_id, []),
            timestamp_key="statementDate",
            start_time=start_time,
            end_time=end_time,
        )
        return {"statements": _page(statements, offset, limit), "total": len(statements)}

    def get_account_statement_by_id(self, account_id: str, statement_id: str) -> Record | None:
        self._simulate_latency(_POINT_LOOKUP_LATENCY)
        return _find(
            self.dataset.account_statements.get(account_id, []),
            "statementId",
            statement_id,
        )

    def get_account_transactions(  # noqa: PLR0913
        self,
        account_id: str,
        offset: int = 0,
        limit: int = 100,
        start_time: str = "",
        end_time: str = "",
    ) -> dict[str, object]:
        self._simulate_latency(_COLLECTION_LATENCY)
        transactions = _within_window(
            self.dataset.account_transactions.get(account_id, []),
            timestamp_key="postedTimestamp",
            start_time=start_time,
            end_time=end_time,
        )
        return {"transactions": _page(transactions, offset, limit), "total": len(transactions)}

    def get_payment_networks(
        self,
        account_id: str,
        offset: int = 0,
        limit: int = 100,
    ) -> dict[str, object]:
        self._simulate_latency(_COLLECTION_LATENCY)
        networks = self.dataset.account_payment_networks.get(account_id, [])
        return {"paymentNetworks": _page(networks, offset, limit), "total": len(networks)}

    def get_asset_transfer_networks(
        self,
        account_id: str,
        offset: int = 0,
        limit: int = 100,
    ) -> dict[str, object]:
        self._simulate_latency(_COLLECTION_LATENCY)
        networks = self.dataset.account_asset_transfer_networks.get(account_id, [])
        return {"assetTransferNetworks": _page(networks, offset, limit), "total": len(networks)}

    def _simulate_latency(self, seconds: float) -> None:
        if self._latency_scale > 0:
            self._clock.sleep(seconds * self._latency_scale)


OPERATION_NAMES: tuple[str, ...] = (
    "get_current_customer",
    "get_customer_by_id",
    "get_customers",
    "get_accounts",
    "get_account_by_id",
    "get_account_contact_by_id",
    "get_account_statements",
    "get_account_statement_by_id",
    "get_account_transactions",
    "get_payment_networks",
    "get_asset_transfer_networks",
)


def register_financial_activities(
    registry: ActivityRegistry,
    activities: FinancialDataActivities,
    *,
    retry_policy: RetryPolicy | None = None,
    timeout_seconds: float | None = None,
) -> ActivityRegistry:
    """Register every financial lookup under its operation name."""

    for name in OPERATION_NAMES:
        registry.register(
            name,
            getattr(activities, name),
            retry_policy=retry_policy,
            timeout_seconds=timeout_seconds,
        )
    return registry


def _find(records: list[Record], key: str, value: str) -> Record | None:
    for record in records:
        if record.get(key) == value:
            return record
    return None


def _page(records: list[Record], offset: int, limit: int) -> list[Record]:
    offset = max(int(offset), 0)
    limit = max(int(limit), 0)
    return records[offset : offset + limit]


def _within_window(
    records: list[Record],
    *,
    timestamp_key: str,
    start_time: str,
    end_time: str,
) -> list[Record]:
    start = _parse_bound(start_time) if start_time else None
    end = _parse_bound(end_time) if end_time else None
    if start is not None and end is not None and start > end:
        raise ClassifiedFailure(
            ErrorKind.NON_RETRYABLE,
            "start_time must be before or equal to end_time",
        )

    selected: list[Record] = []
    for record in records:
        moment = _parse_bound(str(record[timestamp_key]))
        if start is not None and moment < start:
            continue
        if end is not None and moment > end:
            continue
        selected.append(record)
    return selected


def _parse_bound(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as error:
        raise ClassifiedFailure(
            ErrorKind.NON_RETRYABLE,
            f"Invalid ISO-8601 timestamp: {value!r}",
        ) from error
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
