"""
Portfolio, Asset and Transaction API Tests.

Tests for the ledger endpoints:
- /portfolios: CRUD, summary, lookup by address
- /portfolios/{id}/assets, /assets/{id}: holdings, balance adjustment, transfer
- /portfolios/{id}/transactions, /transactions/{id}: record, edit, reverse

Reference: moonfolio/app/api/v1/portfolios.py, assets.py, transactions.py
"""
from decimal import Decimal

API_BASE = "/api/v1"


# ============================================================================
# HELPERS
# ============================================================================

def create_portfolio(client, name="Main", **extra) -> dict:
    response = client.post(f"{API_BASE}/portfolios", json={"name": name, **extra})
    assert response.status_code == 201, response.text
    return response.json()


def create_asset(client, portfolio_id, symbol="ETH", price_id="ethereum", **extra) -> dict:
    payload = {"name": symbol.title(), "symbol": symbol, "price_id": price_id, **extra}
    response = client.post(f"{API_BASE}/portfolios/{portfolio_id}/assets", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def record(client, portfolio_id, asset_id, tx_type, amount, price=None, **extra):
    payload = {"asset_id": asset_id, "type": tx_type, "amount": amount, **extra}
    if price is not None:
        payload["price"] = price
    return client.post(f"{API_BASE}/portfolios/{portfolio_id}/transactions", json=payload)


# ============================================================================
# PORTFOLIOS
# ============================================================================

def test_health_and_root(client):
    assert client.get(f"{API_BASE}/health").json() == {"status": "ok"}
    assert client.get("/").json()["name"] == "Moonfolio"


def test_create_get_update_list(client):
    portfolio = create_portfolio(client, "Long term")
    assert portfolio["wallet_address"] is None
    assert portfolio["is_ens"] is False
    assert portfolio["include_in_summary"] is True

    response = client.put(f"{API_BASE}/portfolios/{portfolio['id']}", json={"name": "Cold storage"})
    assert response.status_code == 200
    assert response.json()["name"] == "Cold storage"

    assert client.get(f"{API_BASE}/portfolios/{portfolio['id']}").json()["name"] == "Cold storage"
    assert [p["id"] for p in client.get(f"{API_BASE}/portfolios").json()] == [portfolio["id"]]


def test_public_create_rejects_wallet_fields(client):
    response = client.post(f"{API_BASE}/portfolios", json={
        "name": "Sneaky", "wallet_address": "0x" + "1" * 40,
        })
    assert response.status_code == 422


def test_missing_portfolio_is_structured_404(client):
    response = client.get(f"{API_BASE}/portfolios/999")

    assert response.status_code == 404
    body = response.json()
    assert body["error_code"] == "NOT_FOUND"
    assert body["applied"] == "none"
    assert body["retry_safe"] is False


def test_unknown_address_lookup(client):
    response = client.get(f"{API_BASE}/portfolios/by-address/0x" + "a" * 40)
    assert response.status_code == 404


def test_delete_portfolio_cascades(client):
    portfolio = create_portfolio(client)
    eth = create_asset(client, portfolio["id"], balance="1")
    record(client, portfolio["id"], eth["id"], "buy", "1", price="2000")

    response = client.delete(f"{API_BASE}/portfolios/{portfolio['id']}")

    assert response.status_code == 200
    assert response.json()["cascaded_count"] == 2
    assert client.get(f"{API_BASE}/assets/{eth['id']}").status_code == 404
    assert client.get(f"{API_BASE}/portfolios/{portfolio['id']}").status_code == 404


# ============================================================================
# ASSETS
# ============================================================================

def test_asset_is_priced(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], symbol="eth", balance="2", avg_buy_price="2500")

    assert asset["symbol"] == "ETH"
    assert asset["balance"] == "2"
    assert asset["quote_available"] is True
    assert Decimal(asset["current_price"]) == Decimal("3000")
    assert Decimal(asset["value"]) == Decimal("6000")
    assert Decimal(asset["profit_loss"]) == Decimal("1000")
    assert Decimal(asset["profit_loss_percentage"]) == Decimal("20")


def test_asset_without_quote_has_zero_price_fields(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], symbol="XYZ", price_id="no-such-coin", balance="5")

    assert asset["quote_available"] is False
    assert Decimal(asset["value"]) == 0
    assert Decimal(asset["profit_loss"]) == 0


def test_adding_same_symbol_merges(client):
    portfolio = create_portfolio(client)
    first = create_asset(client, portfolio["id"], balance="1", avg_buy_price="100")
    second = create_asset(client, portfolio["id"], balance="1", avg_buy_price="300")

    assert second["id"] == first["id"]
    assert second["balance"] == "2"
    assert Decimal(second["avg_buy_price"]) == Decimal("200")
    assert len(client.get(f"{API_BASE}/portfolios/{portfolio['id']}/assets").json()) == 1


def test_negative_balance_is_rejected_by_schema(client):
    portfolio = create_portfolio(client)
    response = client.post(f"{API_BASE}/portfolios/{portfolio['id']}/assets", json={
        "name": "Ether", "symbol": "ETH", "price_id": "ethereum", "balance": "-1",
        })
    assert response.status_code == 422


def test_balance_update_records_adjustment(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], balance="1")

    response = client.put(f"{API_BASE}/assets/{asset['id']}", json={"balance": "0.25"})

    assert response.status_code == 200
    assert response.json()["balance"] == "0.25"
    history = client.get(f"{API_BASE}/portfolios/{portfolio['id']}/transactions").json()
    assert history[0]["type"] == "sell"
    assert history[0]["amount"] == "0.75"
    assert history[0]["note"] == "Balance adjustment"


def test_delete_asset(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], balance="3")
    record(client, portfolio["id"], asset["id"], "sell", "1")

    response = client.delete(f"{API_BASE}/assets/{asset['id']}")

    assert response.status_code == 200
    assert response.json()["cascaded_count"] == 1
    assert client.get(f"{API_BASE}/portfolios/{portfolio['id']}/transactions").json() == []


# ============================================================================
# TRANSACTIONS
# ============================================================================

def test_buy_updates_balance_before_response(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], balance="1", avg_buy_price="100")

    response = record(client, portfolio["id"], asset["id"], "buy", "1", price="200", note="dip")

    assert response.status_code == 201
    tx = response.json()
    assert tx["asset_symbol"] == "ETH"
    assert Decimal(tx["value"]) == Decimal("200")
    assert tx["status"] == "completed"

    refreshed = client.get(f"{API_BASE}/assets/{asset['id']}").json()
    assert refreshed["balance"] == "2"
    assert Decimal(refreshed["avg_buy_price"]) == Decimal("150")


def test_overdraw_is_invariant_violation(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"], balance="1")

    response = record(client, portfolio["id"], asset["id"], "withdraw", "2")

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "INVARIANT_VIOLATION"
    assert body["applied"] == "none"
    assert client.get(f"{API_BASE}/assets/{asset['id']}").json()["balance"] == "1"


def test_swap_moves_both_legs(client):
    portfolio = create_portfolio(client)
    eth = create_asset(client, portfolio["id"], balance="2")
    usdc = create_asset(client, portfolio["id"], symbol="USDC", price_id="usd-coin")

    response = record(client, portfolio["id"], eth["id"], "swap", "1", price="3000",
                      to_asset_id=usdc["id"], to_amount="3000", to_price="1")

    assert response.status_code == 201
    assert response.json()["to_asset_symbol"] == "USDC"
    assert client.get(f"{API_BASE}/assets/{eth['id']}").json()["balance"] == "1"
    assert client.get(f"{API_BASE}/assets/{usdc['id']}").json()["balance"] == "3000"


def test_swap_without_destination_is_rejected(client):
    portfolio = create_portfolio(client)
    eth = create_asset(client, portfolio["id"], balance="2")

    assert record(client, portfolio["id"], eth["id"], "swap", "1").status_code == 422


def test_update_transaction_only_touches_metadata(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"])
    tx = record(client, portfolio["id"], asset["id"], "deposit", "4").json()

    response = client.put(f"{API_BASE}/transactions/{tx['id']}", json={"note": "airdrop", "status": "pending"})
    assert response.status_code == 200
    assert response.json()["note"] == "airdrop"
    assert response.json()["status"] == "pending"

    rejected = client.put(f"{API_BASE}/transactions/{tx['id']}", json={"amount": "5"})
    assert rejected.status_code == 422
    assert client.get(f"{API_BASE}/assets/{asset['id']}").json()["balance"] == "4"


def test_delete_transaction_reverses_balance(client):
    portfolio = create_portfolio(client)
    asset = create_asset(client, portfolio["id"])
    tx = record(client, portfolio["id"], asset["id"], "buy", "3", price="10").json()

    response = client.delete(f"{API_BASE}/transactions/{tx['id']}")

    assert response.status_code == 200
    assert client.get(f"{API_BASE}/transactions/{tx['id']}").status_code == 404
    assert client.get(f"{API_BASE}/assets/{asset['id']}").json()["balance"] == "0"


# ============================================================================
# OVERVIEW, SUMMARY, TRANSFER
# ============================================================================

def test_overview_and_summary(client):
    included = create_portfolio(client, "Included")
    excluded = create_portfolio(client, "Excluded", include_in_summary=False)
    create_asset(client, included["id"], symbol="BTC", price_id="bitcoin", balance="0.1")
    create_asset(client, excluded["id"], balance="10")

    overview = client.get(f"{API_BASE}/portfolios/{included['id']}/overview").json()
    assert Decimal(overview["total_value"]) == Decimal("5000")
    assert Decimal(overview["change_24h"]) > 0

    summary = client.get(f"{API_BASE}/portfolios/summary").json()
    assert Decimal(summary["total_value"]) == Decimal("5000")
    assert summary["portfolio_ids"] == [included["id"]]


def test_transfer_between_portfolios(client):
    source = create_portfolio(client, "Exchange")
    target = create_portfolio(client, "Ledger")
    eth = create_asset(client, source["id"], balance="3", avg_buy_price="1000")

    response = client.post(f"{API_BASE}/assets/{eth['id']}/transfer", json={
        "target_portfolio_id": target["id"], "amount": "1",
        })

    assert response.status_code == 200, response.text
    result = response.json()
    assert result["source_deleted"] is False
    assert result["price_source"] == "market"
    assert Decimal(result["unit_price"]) == Decimal("3000")
    assert client.get(f"{API_BASE}/assets/{eth['id']}").json()["balance"] == "2"
    moved = client.get(f"{API_BASE}/assets/{result['destination_asset_id']}").json()
    assert moved["portfolio_id"] == target["id"]
    assert moved["balance"] == "1"


def test_transfer_more_than_balance_changes_nothing(client):
    source = create_portfolio(client, "Exchange")
    target = create_portfolio(client, "Ledger")
    eth = create_asset(client, source["id"], balance="1")

    response = client.post(f"{API_BASE}/assets/{eth['id']}/transfer", json={
        "target_portfolio_id": target["id"], "amount": "5",
        })

    assert response.status_code == 422
    assert client.get(f"{API_BASE}/portfolios/{target['id']}/assets").json() == []
    assert client.get(f"{API_BASE}/portfolios/{source['id']}/transactions").json() == []
