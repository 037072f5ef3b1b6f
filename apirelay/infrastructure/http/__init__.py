"""HTTP adapters for the remote API collaborator."""
