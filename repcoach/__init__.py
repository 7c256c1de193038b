"""Voice workout coach for Hevy routines."""
__version__ = "0.1.0"
