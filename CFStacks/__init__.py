"""
stackforge

Inventory, visualize and update stacks created from released CloudFormation templates.
"""

__version__ = '1.0.0'

from .errors import StackForgeError
from .graph import (
    CyclicConnectionsError,
    Graph,
    GraphError,
    NoStartNodesError,
    Node,
    NodeNotFoundError,
    create_graph
)
from .models import ParentReference, StackDescriptor
from .stack_graph import build_stack_graph, extract_parent_references

__all__ = [
    '__version__',
    'StackForgeError',
    'Graph',
    'Node',
    'GraphError',
    'NodeNotFoundError',
    'NoStartNodesError',
    'CyclicConnectionsError',
    'create_graph',
    'ParentReference',
    'StackDescriptor',
    'build_stack_graph',
    'extract_parent_references'
]
