from parsers.parser_positions import parse_positions_csv, parse_positions_csv_with_report
from parsers.parser_transactions import (
    classify_action, parse_transactions, parse_transactions_with_report,
)
