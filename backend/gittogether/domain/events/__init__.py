"""Community events board."""
