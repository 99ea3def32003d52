"""Upstream client, connector, backfill and fanout."""
