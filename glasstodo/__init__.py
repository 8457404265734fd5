"""Multi-device task sync server with Web Push reminders."""

__version__ = "0.1.0"
