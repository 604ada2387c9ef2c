"""User identities."""
