"""TieTrack - inventory tracking for a necktie collection."""

__version__ = "0.1.0"
