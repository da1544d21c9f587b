"""
Directed Graph Engine

Labeled, data-bearing nodes grouped into nested subgraphs.
Supports topological sorting and Graphviz DOT export.
"""

from typing import Any, Callable, Dict, List, Optional


class GraphError(Exception):
    """Base exception for graph modeling errors"""
    pass


class NodeNotFoundError(GraphError):
    """Raised when a node id is not registered in the graph"""

    def __init__(self, node_id: str):
        super().__init__(f"node {node_id} does not exist")
        self.node_id = node_id


class NoStartNodesError(GraphError):
    """Raised when every node of a non-empty graph has an outgoing edge"""

    def __init__(self):
        super().__init__("no start nodes found")


class CyclicConnectionsError(GraphError):
    """Raised when sorting cannot make progress because of a cycle"""

    def __init__(self, node_ids: List[str]):
        super().__init__("cyclic connections found")
        self.node_ids = node_ids


class Node:
    """
    A node owned by a single Graph.

    Edges are stored as ordered sets of node ids (dict keys) and resolved
    back to Node objects through the owning graph.
    """

    def __init__(self, graph: 'Graph', node_id: str, label: str, data: Any = None):
        self.graph = graph
        self.id = node_id
        self.label = label
        self.data = data
        self._outgoing: Dict[str, None] = {}
        self._incoming: Dict[str, None] = {}

    def connect(self, other: 'Node') -> 'Node':
        """
        Add an edge from this node to another node of the same graph.

        Args:
            other: Target node (looked up by id in this node's graph)

        Returns:
            This node, to allow chaining

        Raises:
            NodeNotFoundError: If other's id is not registered in this graph
        """
        target = self.graph.find(other.id)
        if target is None:
            raise NodeNotFoundError(other.id)

        self._outgoing[target.id] = None
        target._incoming[self.id] = None
        return self

    def find_and_connect(self, node_id: str) -> 'Node':
        """Look up node_id in this node's graph and connect to it."""
        target = self.graph.find(node_id)
        if target is None:
            raise NodeNotFoundError(node_id)
        return self.connect(target)

    def outgoing(self) -> List['Node']:
        return [self.graph.find(node_id) for node_id in self._outgoing]

    def incoming(self) -> List['Node']:
        return [self.graph.find(node_id) for node_id in self._incoming]

    def __repr__(self):
        return f"Node({self.id!r}, label={self.label!r})"


class Graph:
    """
    Mutable directed graph.

    Node ids are unique within one graph instance. Subgraphs keep their own
    node namespaces and are memoized by id.
    """

    def __init__(self, graph_id: str, label: str):
        self.id = graph_id
        self.label = label
        self._nodes: Dict[str, Node] = {}
        self._subgraphs: Dict[str, 'Graph'] = {}

    def subgraph(self, graph_id: str, label: str) -> 'Graph':
        """
        Get or create a child graph.

        Args:
            graph_id: Subgraph identifier
            label: Display label, only used when the subgraph is created

        Returns:
            The child graph registered under graph_id
        """
        if graph_id not in self._subgraphs:
            self._subgraphs[graph_id] = Graph(graph_id, label)
        return self._subgraphs[graph_id]

    def subgraphs(self) -> List['Graph']:
        return list(self._subgraphs.values())

    def create(self, node_id: str, label: str, data: Any = None) -> Node:
        """Insert a node, replacing any node already registered under node_id."""
        node = Node(self, node_id, label, data)
        self._nodes[node_id] = node
        return node

    def find(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def filter(self, condition: Callable[[Node], bool]) -> List[Node]:
        return [node for node in self._nodes.values() if condition(node)]

    def __len__(self):
        return len(self._nodes)

    def sort(self) -> List[Node]:
        """
        Order nodes so that every node comes after all of its outgoing neighbours.

        Nodes without outgoing edges come first. Reverse the result to get
        an order where each node precedes the nodes it points to.

        Returns:
            List of nodes

        Raises:
            NoStartNodesError: If the graph is non-empty and every node has an outgoing edge
            CyclicConnectionsError: If the remaining nodes reference each other in a cycle
        """
        if not self._nodes:
            return []

        start_nodes = self.filter(lambda node: len(node._outgoing) == 0)
        if not start_nodes:
            raise NoStartNodesError()

        visited = {node.id for node in start_nodes}
        pending: Dict[str, Node] = {
            node.id: node for node in self.filter(lambda node: len(node._outgoing) != 0)
        }
        result = list(start_nodes)

        while pending:
            progress = False
            for node_id, node in list(pending.items()):
                # all outgoing nodes are visited, so this one can be visited too
                if all(target_id in visited for target_id in node._outgoing):
                    result.append(node)
                    visited.add(node_id)
                    del pending[node_id]
                    progress = True
            if not progress:
                raise CyclicConnectionsError(list(pending))

        return result

    def _to_dot(self, kind: str) -> str:
        if kind == 'subgraph':
            dot = f'{kind} "cluster_{self.id}" {{\n'
        else:
            dot = f'{kind} "{self.id}" {{\n'
        dot += 'rankdir=LR;\n'
        dot += f'label="{self.label}";\n'

        for node in self._nodes.values():
            dot += f'"{node.id}"[label="{node.label}"];\n'

        for node in self._nodes.values():
            for target in node.outgoing():
                dot += f'"{node.id}" -> "{target.id}";\n'

        for subgraph in self._subgraphs.values():
            dot += subgraph._to_dot('subgraph')

        dot += '}\n'
        return dot

    def to_dot(self) -> str:
        """Render the graph and all of its subgraphs as a Graphviz digraph."""
        return self._to_dot('digraph')

    def __repr__(self):
        return f"Graph({self.id!r}, label={self.label!r}, nodes={len(self._nodes)})"


def create_graph(graph_id: str, label: str) -> Graph:
    """Create an empty root graph."""
    return Graph(graph_id, label)
