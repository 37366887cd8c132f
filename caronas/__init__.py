"""ICEA Caronas Backend - ride offers, seat reservations and ratings."""

__version__ = "1.0.0"
