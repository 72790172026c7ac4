"""
Converters between the campaign graph and its persisted or executable forms.
"""

from .flow_serializer import deserialize_graph, serialize_graph
from .recipient_lifecycle import RecipientLifecycle

__all__ = ['RecipientLifecycle', 'deserialize_graph', 'serialize_graph']
