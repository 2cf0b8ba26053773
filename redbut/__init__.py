"""
                RedBut Front-of-House Core

Status transition engine for restaurant service requests and orders,
with pluggable storage, notification fan-out and an assistant tool
adapter layered on top.
"""

__version__ = "1.0.0"
