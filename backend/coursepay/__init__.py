"""Course purchase settlement service."""
