"""
Utility functions for Moonfolio.

This package contains:
- financial_math: balance deltas, weighted average buy price, 24h change
- decimal_utils: Decimal parsing, quantization and plain-string formatting
- datetime_utils: timezone-aware UTC helpers
- cache_utils: named TTL caches
"""
