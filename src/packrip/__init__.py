"""Pack rip backend: timed card-pack windows, weighted draws and overlay broadcasts."""

__version__ = "1.0.0"
