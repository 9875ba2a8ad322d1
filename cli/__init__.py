"""Mail queue CLI - run workers and inspect the email queue."""

__version__ = "1.0.0"
