"""Metaobject protocol: class descriptors created and changed at run time."""

from .descriptors import AttributeDescriptor, ClassDescriptor, Instance
from .protocol import MetaobjectProtocol, get_protocol, reset_protocol

__all__ = [
    "AttributeDescriptor",
    "ClassDescriptor",
    "Instance",
    "MetaobjectProtocol",
    "get_protocol",
    "reset_protocol",
]
