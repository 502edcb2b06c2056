"""Google Compute Engine client and instance lifecycle."""
