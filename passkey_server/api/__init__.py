"""HTTP API for the passkey ceremony server."""
