"""Evidence pack: bounded, spend-representative snapshot of ads and sales data."""
