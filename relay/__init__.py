"""Relay service forwarding voice transcripts to the Rev assistant."""

__version__ = "0.1.0"
