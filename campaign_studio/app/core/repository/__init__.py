"""Campaign store package exports."""

from . import factory
from .base import CampaignStore, require_psycopg, require_pymongo
from .in_memory import InMemoryCampaignStore
from .mongo import MongoCampaignStore
from .postgres import PostgresCampaignStore

__all__ = [
    'CampaignStore',
    'factory',
    'InMemoryCampaignStore',
    'MongoCampaignStore',
    'PostgresCampaignStore',
    'require_pymongo',
    'require_psycopg',
]
