"""Bagel Funds: rotating savings circles."""
