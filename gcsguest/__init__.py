"""Guest-side helpers for Linux utility VMs that host containers."""

__version__ = "0.1.0"