"""
Feature modules for Rankstream.

leaderboard: score ingestion, fast/durable stores and rank reconciliation.
"""
