"""
Stack Dependency Builder

Turns a flat list of stack descriptors into a dependency graph with one
subgraph per account/region scope. Edges point from the parent stack to the
stack that references it through a Parent* parameter.
"""

from typing import Callable, Dict, Iterable, List

from .graph import Graph, NodeNotFoundError, create_graph
from .models import ParentReference, StackDescriptor

PARENT_PARAMETER_PREFIX = 'Parent'


def extract_parent_references(parameters: Dict[str, str]) -> List[ParentReference]:
    """
    Collect the parameters that name a parent stack.

    Args:
        parameters: Stack parameters (key -> value)

    Returns:
        One reference per non-empty Parent* parameter, in parameter order
    """
    return [
        ParentReference(parameter_name=key, stack_name=value)
        for key, value in parameters.items()
        if key.startswith(PARENT_PARAMETER_PREFIX) and value != ''
    ]


def scope_id(account_id: str, region: str) -> str:
    return f"{account_id}:{region}"


def stack_node_id(account_id: str, region: str, name: str) -> str:
    return f"{scope_id(account_id, region)}:{name}"


def shorten(text: str, front: int = 12, back: int = 12, ellipsis: str = '...') -> str:
    """Cut the middle out of text that is longer than front + back characters."""
    if len(text) <= front + back:
        return text
    return f"{text[:front]}{ellipsis}{text[len(text) - back:]}"


def graph_label(stack: StackDescriptor) -> str:
    # \n is the DOT escape for a centered line break
    return f"{stack.template_id}\\n{shorten(stack.name)}\\n{stack.version_label}"


def id_label(stack: StackDescriptor) -> str:
    return stack_node_id(stack.account_id, stack.region, stack.name)


def scope_label(stack: StackDescriptor) -> str:
    return f"{stack.region} ({stack.account_id})"


def build_stack_graph(
    stacks: Iterable[StackDescriptor],
    graph_id: str = 'root',
    label: str = 'stacks',
    node_label: Callable[[StackDescriptor], str] = id_label
) -> Graph:
    """
    Build the dependency graph for a set of stacks.

    Args:
        stacks: Fully materialized stack descriptors
        graph_id: Id of the root graph
        label: Label of the root graph
        node_label: Function producing the display label of a stack node

    Returns:
        Root graph with one subgraph per account/region scope

    Raises:
        NodeNotFoundError: If a parent stack is not deployed in the same scope
    """
    stacks = list(stacks)
    root = create_graph(graph_id, label)

    for stack in stacks:
        scope = root.subgraph(scope_id(stack.account_id, stack.region), scope_label(stack))
        scope.create(stack_node_id(stack.account_id, stack.region, stack.name), node_label(stack), stack)

    for stack in stacks:
        scope = root.subgraph(scope_id(stack.account_id, stack.region), scope_label(stack))
        node = scope.find(stack_node_id(stack.account_id, stack.region, stack.name))
        for reference in stack.parent_references:
            parent_id = stack_node_id(stack.account_id, stack.region, reference.stack_name)
            parent = scope.find(parent_id)
            if parent is None:
                # an update must never run without its parent stack
                raise NodeNotFoundError(parent_id)
            parent.connect(node)

    return root
