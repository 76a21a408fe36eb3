"""Flask JSON API for the perioperative engine."""
