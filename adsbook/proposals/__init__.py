"""Product-experiment proposal intake."""
