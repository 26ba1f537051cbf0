"""
Pydantic schemas for Moonfolio.

Used by the API layer and the services to validate data structures and
standardize data exchange between components.

**Organization by Domain**:
- common.py: DecimalStr, ErrorResponse, BaseDeleteResult
- users.py: User create/read (US prefix)
- portfolios.py: Portfolio CRUD + overview/summary (PF prefix)
- assets.py: Asset CRUD, priced assets, transfer (FA prefix)
- transactions.py: Transaction CRUD + detailed read-model (TX prefix)
- prices.py: Quotes, market listings, broadcast messages (PX prefix)
- wallets.py: Wallet identity, balances, connect flow (WL prefix)
- charts.py: Chart series (CH prefix)

**Design Notes**:
- Decimals cross the API as strings (DecimalStr), never as floats
- All request models forbid unknown fields
"""
