"""Database models for the salon queue."""

from .base import Base
from .catalog import Customer, Offer, Salon, Service
from .queue import QueueEntry

__all__ = ["Base", "Customer", "Offer", "QueueEntry", "Salon", "Service"]
