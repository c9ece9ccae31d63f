"""Building blocks for an event-driven networking engine: poller, task queues, sockets, listeners, options and load balancers."""

__version__ = "0.1.0"