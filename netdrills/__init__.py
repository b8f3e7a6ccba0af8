"""TCP networking drills: endpoints, buffers, framing, messages, timers, clients and servers."""

__version__ = "0.1.0"