"""crawlparse: encoding detection and tolerant HTML parsing for crawled pages."""

__version__ = "0.1.0"
