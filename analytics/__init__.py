from analytics.market_data import QuoteCache, fetch_candles, get_quote, get_quotes
from analytics.portfolio import (
    allocation, apply_live_quotes, calculate_portfolio_totals, todays_change,
)
