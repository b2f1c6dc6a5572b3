"""Leave: types, balances, requests and the entitlement query."""
