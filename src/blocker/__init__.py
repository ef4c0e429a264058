"""Blocker: Docker volume plugin backed by EBS block volumes."""

__version__ = "0.3.0"
