"""marketrelay - lazily-connected relay from an IOTA node's ZMQ feed to in-process subscribers."""

__version__ = "0.1.0"
