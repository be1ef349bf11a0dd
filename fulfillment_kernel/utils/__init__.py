"""Utility helpers for the fulfillment kernel."""
