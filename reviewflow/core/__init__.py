"""Core storage and component factories for ReviewFlow."""
