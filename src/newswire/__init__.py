"""Live news wire simulation: article cycling engine and polling client."""

__version__ = "0.1.0"
