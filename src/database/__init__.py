"""MongoDB-backed stores."""
