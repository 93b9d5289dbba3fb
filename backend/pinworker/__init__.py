"""Video transcode-and-pin HTTP worker."""

__version__ = "0.1.0"
