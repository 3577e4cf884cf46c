"""outreachflow - visual outreach sequence builder core."""

__version__ = "0.1.0"
