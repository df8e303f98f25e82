"""Command-line helpers run alongside the service (migrations, admin tasks)."""
