"""Civics test practice with spaced repetition."""
