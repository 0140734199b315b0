"""Financial-data activities (customers, accounts, statements, transactions, networks)."""
