"""Request helpers for the dashboard routes."""
