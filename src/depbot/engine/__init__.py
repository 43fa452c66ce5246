"""Update reconciliation engine."""
