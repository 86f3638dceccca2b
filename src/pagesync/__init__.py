"""pagesync -- keep a tree of local documents in step with a remote page hierarchy."""

__version__ = "0.4.0"
