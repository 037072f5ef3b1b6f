"""Authentication collaborators (credential issuers)."""
