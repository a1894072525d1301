"""Read-only query layer returning frozen DTOs."""
