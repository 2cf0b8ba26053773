"""
Services Package

Request and order use cases on top of the status engine, the store and
the notification sink.
"""

from redbut.services.orders import OrderService
from redbut.services.requests import RequestService

__all__ = ["OrderService", "RequestService"]
