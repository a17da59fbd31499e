"""UtilSign — upload, place, route and burn signatures onto PDF documents."""

__version__ = "0.1.0"
