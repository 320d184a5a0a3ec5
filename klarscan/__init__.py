"""klarscan - container image vulnerability scanning against Clair."""

__version__ = "0.1.0"
