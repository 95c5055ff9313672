"""Loop-control and concurrency core for long-running coding-agent workflows."""

__version__ = "0.1.0"
