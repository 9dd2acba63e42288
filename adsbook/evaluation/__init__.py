"""Evaluation window, timeline, KIV carry-forward, outcome scoring and evaluation import."""
