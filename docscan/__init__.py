"""Document scanner: flatten and binarize photographed paper documents."""

__version__ = "0.1.0"
