"""routemeta — compile decorated controller classes into API metadata."""

__version__ = "0.1.0"
