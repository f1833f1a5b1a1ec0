"""Demo application started by an exploding archive."""
