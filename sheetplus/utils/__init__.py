"""Internal helpers for sheetplus."""
