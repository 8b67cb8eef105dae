"""Per-user and admin dashboards."""
