"""Seed prices and per-symbol parameters for the offline feed simulator."""

# Starting prices (INR) for commonly watched NSE/BSE names
SEED_PRICES: dict[str, float] = {
    "RELIANCE": 2950.00,
    "TCS": 3900.00,
    "HDFCBANK": 1650.00,
    "INFY": 1500.00,
    "ICICIBANK": 1150.00,
    "SBIN": 820.00,
    "ITC": 430.00,
    "LT": 3600.00,
    "TATAMOTORS": 980.00,
    "ADANIENT": 3100.00,
}

# Per-symbol GBM parameters
# sigma: annualized volatility, mu: annualized drift
TICKER_PARAMS: dict[str, dict[str, float]] = {
    "RELIANCE": {"sigma": 0.22, "mu": 0.08},
    "TCS": {"sigma": 0.20, "mu": 0.07},
    "HDFCBANK": {"sigma": 0.21, "mu": 0.07},
    "INFY": {"sigma": 0.24, "mu": 0.07},
    "ICICIBANK": {"sigma": 0.23, "mu": 0.09},
    "SBIN": {"sigma": 0.28, "mu": 0.08},
    "ITC": {"sigma": 0.18, "mu": 0.06},
    "LT": {"sigma": 0.22, "mu": 0.09},
    "TATAMOTORS": {"sigma": 0.38, "mu": 0.10},  # High volatility
    "ADANIENT": {"sigma": 0.45, "mu": 0.08},  # High volatility
}

# Parameters for symbols not listed above
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.25, "mu": 0.07}

# Exchange code -> market suffix the upstream puts on tick symbols
EXCHANGE_SUFFIXES: dict[str, str] = {
    "NSE": "NS",
    "BSE": "BO",
}
