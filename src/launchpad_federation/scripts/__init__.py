"""Operational entry points run from cron or by hand."""
