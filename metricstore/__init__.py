"""In-memory store of node and container resource metrics, with a scrape loop and health probes."""

__version__ = "0.1.0"