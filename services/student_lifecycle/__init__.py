"""Student lifecycle batch jobs: orphan scan, final removal, mirror backfill."""
