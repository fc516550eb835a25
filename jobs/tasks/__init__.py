"""Retry worker actors."""
