"""Provider-neutral compute interfaces."""
