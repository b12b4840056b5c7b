"""Core enums and the error taxonomy shared by every subsystem."""
