"""Ignitor — backend application scaffold.

The reusable skeleton behind our services: an app factory with the standard
middleware stack, a generic data service over a relational store, a
channel-keyed Server-Sent-Events broadcaster, and structured logging.
"""

__version__ = "0.1.0"
