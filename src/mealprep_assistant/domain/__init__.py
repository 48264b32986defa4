"""Framework-free entities, prompts and scoring rules."""
