"""authkit: account registration, sessions and access control."""
