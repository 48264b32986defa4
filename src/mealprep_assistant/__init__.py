"""Meal-prep assistant backend: intent routing and hybrid recipe retrieval."""
