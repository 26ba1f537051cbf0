"""
Services package.
Business logic and external integrations.

Service Layer:
- LedgerService: portfolios, assets and transactions with their balance rules
- ValuationService: priced holdings, overviews and the summary
- PortfolioOrchestrator: wallet connect and cross-portfolio transfers
- PriceService / ChainService: upstream adapters behind provider registries
"""
from moonfolio.app.services.errors import (
    ConflictError,
    InvalidArgumentError,
    InvariantViolationError,
    MoonfolioError,
    NotFoundError,
    PartiallyAppliedError,
    UpstreamUnavailableError,
    )
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.valuation_service import ValuationService

__all__ = [
    "LedgerService",
    "ValuationService",
    "MoonfolioError",
    "NotFoundError",
    "InvalidArgumentError",
    "InvariantViolationError",
    "ConflictError",
    "UpstreamUnavailableError",
    "PartiallyAppliedError",
    ]
