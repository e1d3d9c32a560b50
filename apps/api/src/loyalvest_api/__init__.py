"""Loyalvest reward vesting and governed-change engine."""
