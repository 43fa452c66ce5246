"""depbot: keeps dependency update pull requests in step with your manifests."""

__version__ = "0.1.0"
__all__ = ["__version__"]
