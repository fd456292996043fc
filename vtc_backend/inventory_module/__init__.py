"""Stock control and fixed assets."""
