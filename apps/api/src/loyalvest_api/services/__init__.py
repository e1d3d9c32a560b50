"""Domain services for rewards, vesting and governed changes."""
