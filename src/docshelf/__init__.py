"""DocShelf - local PDF index, duplicate finder and preview preloader."""

__version__ = "0.1.0"
