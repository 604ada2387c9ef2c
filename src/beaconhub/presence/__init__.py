"""Location reports, presence snapshots and history."""
