"""XP, levels, games and achievements."""
