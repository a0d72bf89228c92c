"""Key storage, access control and delivery."""
