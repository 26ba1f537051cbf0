"""initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Decimal columns are VARCHAR (exact text, see db.types.DecimalText).
Enum columns store the member NAME (BUY, COMPLETED, ...) like SQLModel does.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = '001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = ("portfolio_snapshots", "transactions", "assets", "portfolios", "users")


def upgrade() -> None:
    """Create all tables."""
    conn = op.get_bind()

    print("Starting migration 001_initial...")

    print("  creating table: users")
    conn.execute(sa.text("""CREATE TABLE users
                            (
                                id              INTEGER PRIMARY KEY,
                                username        VARCHAR(64) NOT NULL,
                                hashed_password VARCHAR     NOT NULL,
                                created_at      DATETIME    NOT NULL
                            )"""))
    conn.execute(sa.text("CREATE UNIQUE INDEX ix_users_username ON users (username)"))

    print("  creating table: portfolios")
    conn.execute(sa.text("""CREATE TABLE portfolios
                            (
                                id                 INTEGER PRIMARY KEY,
                                name               VARCHAR(120) NOT NULL,
                                user_id            INTEGER,
                                wallet_address     VARCHAR(42),
                                is_ens             BOOLEAN      NOT NULL,
                                ens_name           VARCHAR,
                                include_in_summary BOOLEAN      NOT NULL,
                                created_at         DATETIME     NOT NULL,
                                updated_at         DATETIME     NOT NULL,
                                FOREIGN KEY (user_id) REFERENCES users (id),
                                CONSTRAINT uq_portfolios_wallet_address UNIQUE (wallet_address)
                            )"""))
    conn.execute(sa.text("CREATE INDEX ix_portfolios_user_id ON portfolios (user_id)"))

    print("  creating table: assets")
    conn.execute(sa.text("""CREATE TABLE assets
                            (
                                id            INTEGER PRIMARY KEY,
                                portfolio_id  INTEGER     NOT NULL,
                                name          VARCHAR     NOT NULL,
                                symbol        VARCHAR(32) NOT NULL,
                                price_id      VARCHAR     NOT NULL,
                                image_url     VARCHAR,
                                balance       VARCHAR(64) NOT NULL,
                                avg_buy_price VARCHAR(64),
                                version       INTEGER     NOT NULL,
                                created_at    DATETIME    NOT NULL,
                                updated_at    DATETIME    NOT NULL,
                                FOREIGN KEY (portfolio_id) REFERENCES portfolios (id),
                                CONSTRAINT uq_assets_portfolio_symbol UNIQUE (portfolio_id, symbol)
                            )"""))
    conn.execute(sa.text("CREATE INDEX ix_assets_portfolio_id ON assets (portfolio_id)"))

    print("  creating table: transactions")
    conn.execute(sa.text("""CREATE TABLE transactions
                            (
                                id           INTEGER PRIMARY KEY,
                                portfolio_id INTEGER     NOT NULL,
                                asset_id     INTEGER     NOT NULL,
                                type         VARCHAR(8)  NOT NULL,
                                status       VARCHAR(9)  NOT NULL,
                                amount       VARCHAR(64) NOT NULL,
                                price        VARCHAR(64),
                                to_asset_id  INTEGER,
                                to_amount    VARCHAR(64),
                                to_price     VARCHAR(64),
                                note         VARCHAR(500),
                                date         DATETIME    NOT NULL,
                                created_at   DATETIME    NOT NULL,
                                FOREIGN KEY (portfolio_id) REFERENCES portfolios (id),
                                FOREIGN KEY (asset_id) REFERENCES assets (id),
                                FOREIGN KEY (to_asset_id) REFERENCES assets (id)
                            )"""))
    conn.execute(sa.text("CREATE INDEX ix_transactions_portfolio_id ON transactions (portfolio_id)"))
    conn.execute(sa.text("CREATE INDEX ix_transactions_asset_id ON transactions (asset_id)"))
    conn.execute(sa.text("CREATE INDEX ix_transactions_to_asset_id ON transactions (to_asset_id)"))
    conn.execute(sa.text(
        "CREATE INDEX idx_transactions_portfolio_date ON transactions (portfolio_id, date, id)"
        ))

    print("  creating table: portfolio_snapshots")
    conn.execute(sa.text("""CREATE TABLE portfolio_snapshots
                            (
                                id           INTEGER PRIMARY KEY,
                                portfolio_id INTEGER,
                                total_value  VARCHAR(64) NOT NULL,
                                recorded_at  DATETIME    NOT NULL,
                                FOREIGN KEY (portfolio_id) REFERENCES portfolios (id)
                            )"""))
    conn.execute(sa.text(
        "CREATE INDEX idx_snapshots_portfolio_recorded ON portfolio_snapshots (portfolio_id, recorded_at)"
        ))

    print("Migration 001_initial done")


def downgrade() -> None:
    """Drop all tables (dependents first)."""
    conn = op.get_bind()
    for table in TABLES:
        conn.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))
