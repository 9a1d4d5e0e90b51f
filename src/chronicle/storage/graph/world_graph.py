"""
WorldGraph: NetworkX-based graph of story entities and what connects them.

Mirrors the story memory's entities, relationships, facts, consequences,
scheduled events and knowledge as a directed multigraph so neighbourhood
questions ("who is connected to the baron?", "who knows this secret?") are
graph walks instead of scans.
"""

from enum import Enum

import networkx as nx


class NodeType(str, Enum):
    """Types of nodes in the world graph."""
    ENTITY = "entity"              # NPCs, places, items, factions, the player...
    FACT = "fact"
    CONSEQUENCE = "consequence"
    EVENT = "event"                # Scheduled events


class EdgeType(str, Enum):
    """Types of relationships between nodes."""
    # Entity <-> entity
    RELATIONSHIP = "relationship"   # entity -> entity, labelled (ally, enemy, member_of, ...)

    # Narrative
    ABOUT = "about"                 # fact -> subject entity
    INVOLVES = "involves"           # fact/consequence/event -> entity
    KNOWS_ABOUT = "knows_about"     # entity -> fact
    SUPERSEDES = "supersedes"       # newer fact -> older fact


class WorldGraph:
    """
    NetworkX-based graph for story memory relationships.

    Uses a directed multigraph to support:
    - Multiple edge types between same nodes
    - Directional relationships (A employs B != B employs A)
    - Rich metadata on nodes and edges
    """

    def __init__(self):
        """Initialize empty world graph."""
        self._graph: nx.MultiDiGraph = nx.MultiDiGraph()

    @property
    def graph(self) -> nx.MultiDiGraph:
        """Access underlying NetworkX graph."""
        return self._graph

    # =========================================================================
    # NODE OPERATIONS
    # =========================================================================

    def add_node(
        self,
        node_id: str,
        node_type: NodeType,
        name: str | None = None,
        **attributes
    ) -> None:
        """
        Add a node to the graph.

        Args:
            node_id: Unique identifier for the node
            node_type: Type of node (entity, fact, ...)
            name: Display name
            **attributes: Additional node attributes
        """
        self._graph.add_node(
            node_id,
            node_type=node_type.value,
            name=name,
            **attributes
        )

    def get_node(self, node_id: str) -> dict | None:
        """Get node data by ID."""
        if node_id in self._graph:
            return dict(self._graph.nodes[node_id])
        return None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._graph

    def get_nodes_by_type(self, node_type: NodeType) -> list[str]:
        """Get all node IDs of a specific type."""
        return [
            node_id for node_id, data in self._graph.nodes(data=True)
            if data.get("node_type") == node_type.value
        ]

    # =========================================================================
    # EDGE OPERATIONS
    # =========================================================================

    def add_edge(
        self,
        source_id: str,
        target_id: str,
        edge_type: EdgeType,
        **attributes
    ) -> int | None:
        """
        Add an edge between two existing nodes.

        Returns:
            Edge key if successful, None if either node doesn't exist
        """
        if source_id not in self._graph or target_id not in self._graph:
            return None
        return self._graph.add_edge(source_id, target_id, edge_type=edge_type.value, **attributes)

    def get_outgoing_edges(
        self,
        node_id: str,
        edge_type: EdgeType | None = None
    ) -> list[tuple[str, dict]]:
        """Get all outgoing edges from a node."""
        if node_id not in self._graph:
            return []

        results = []
        for _, target_id, key, data in self._graph.out_edges(node_id, keys=True, data=True):
            if edge_type is None or data.get("edge_type") == edge_type.value:
                results.append((target_id, {"key": key, **data}))
        return results

    def get_incoming_edges(
        self,
        node_id: str,
        edge_type: EdgeType | None = None
    ) -> list[tuple[str, dict]]:
        """Get all incoming edges to a node."""
        if node_id not in self._graph:
            return []

        results = []
        for source_id, _, key, data in self._graph.in_edges(node_id, keys=True, data=True):
            if edge_type is None or data.get("edge_type") == edge_type.value:
                results.append((source_id, {"key": key, **data}))
        return results

    # =========================================================================
    # CONVENIENCE METHODS: ENTITIES & RELATIONSHIPS
    # =========================================================================

    def add_entity(self, entity_id: str, name: str, entity_type: str, **data) -> None:
        self.add_node(entity_id, NodeType.ENTITY, name=name, entity_type=entity_type, **data)

    def add_relationship(
        self,
        relationship_id: str,
        source_id: str,
        target_id: str,
        relationship_type: str,
        bidirectional: bool = False,
    ) -> None:
        """Add a labelled relationship; bidirectional ones get an edge each way."""
        self.add_edge(source_id, target_id, EdgeType.RELATIONSHIP,
                      relationship=relationship_type, relationship_id=relationship_id)
        if bidirectional:
            self.add_edge(target_id, source_id, EdgeType.RELATIONSHIP,
                          relationship=relationship_type, relationship_id=relationship_id)

    def get_relationships(self, entity_id: str) -> list[tuple[str, str]]:
        """(other entity id, relationship label) for every outgoing relationship."""
        return [
            (target_id, data["relationship"])
            for target_id, data in self.get_outgoing_edges(entity_id, EdgeType.RELATIONSHIP)
        ]

    # =========================================================================
    # CONVENIENCE METHODS: FACTS, CONSEQUENCES, EVENTS, KNOWLEDGE
    # =========================================================================

    def add_fact(
        self,
        fact_id: str,
        subject_id: str,
        category: str,
        involved_ids: list[str] | None = None,
    ) -> None:
        self.add_node(fact_id, NodeType.FACT, category=category)
        self.add_edge(fact_id, subject_id, EdgeType.ABOUT)
        for involved_id in involved_ids or []:
            if involved_id != subject_id:
                self.add_edge(fact_id, involved_id, EdgeType.INVOLVES)

    def supersede_fact(self, new_fact_id: str, old_fact_id: str) -> None:
        self.add_edge(new_fact_id, old_fact_id, EdgeType.SUPERSEDES)

    def add_narrative_node(self, node_id: str, node_type: NodeType, involved_ids: list[str] | None = None) -> None:
        """Consequences and scheduled events: a node linked to the entities it involves."""
        self.add_node(node_id, node_type)
        for involved_id in involved_ids or []:
            self.add_edge(node_id, involved_id, EdgeType.INVOLVES)

    def entity_learns(self, entity_id: str, fact_id: str, knowledge_id: str | None = None) -> bool:
        """Record that an entity knows a fact."""
        if not self.has_node(entity_id) or not self.has_node(fact_id):
            return False
        self.add_edge(entity_id, fact_id, EdgeType.KNOWS_ABOUT, knowledge_id=knowledge_id)
        return True

    def entity_forgets(self, entity_id: str, knowledge_id: str) -> None:
        """Drop the KNOWS_ABOUT edge created for one knowledge entry."""
        for target_id, data in self.get_outgoing_edges(entity_id, EdgeType.KNOWS_ABOUT):
            if data.get("knowledge_id") == knowledge_id:
                self._graph.remove_edge(entity_id, target_id, key=data["key"])

    def get_entity_knowledge(self, entity_id: str) -> list[str]:
        """Fact IDs an entity knows about."""
        return list(dict.fromkeys(
            target_id for target_id, _ in self.get_outgoing_edges(entity_id, EdgeType.KNOWS_ABOUT)
        ))

    def get_knowers(self, fact_id: str) -> list[str]:
        """Entity IDs that know about a fact."""
        return list(dict.fromkeys(
            source_id for source_id, _ in self.get_incoming_edges(fact_id, EdgeType.KNOWS_ABOUT)
        ))

    def get_facts_about(self, entity_id: str) -> list[str]:
        """Fact IDs whose subject is, or which involve, the entity."""
        about = [s for s, _ in self.get_incoming_edges(entity_id, EdgeType.ABOUT)]
        involves = [
            s for s, _ in self.get_incoming_edges(entity_id, EdgeType.INVOLVES)
            if self._graph.nodes[s].get("node_type") == NodeType.FACT.value
        ]
        return list(dict.fromkeys(about + involves))

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_neighborhood(
        self,
        node_id: str,
        depth: int = 1,
        edge_types: list[EdgeType] | None = None,
        node_type: NodeType | None = None,
    ) -> list[str]:
        """Get all nodes within N edges of a node, following edges in either direction."""
        if node_id not in self._graph:
            return []

        allowed = {et.value for et in edge_types} if edge_types else None
        visited = {node_id}
        frontier = [node_id]

        for _ in range(depth):
            next_frontier = []
            for current in frontier:
                edges = self.get_outgoing_edges(current) + self.get_incoming_edges(current)
                for other_id, edge_data in edges:
                    if allowed is not None and edge_data.get("edge_type") not in allowed:
                        continue
                    if other_id not in visited:
                        visited.add(other_id)
                        next_frontier.append(other_id)
            frontier = next_frontier

        visited.discard(node_id)  # Don't include starting node
        if node_type is not None:
            visited = {n for n in visited if self._graph.nodes[n].get("node_type") == node_type.value}
        return sorted(visited)

    def find_path(
        self,
        start_id: str,
        end_id: str,
        edge_types: list[EdgeType] | None = None
    ) -> list[str] | None:
        """
        Find shortest path between two nodes, ignoring edge direction.

        Returns:
            List of node IDs in path, or None if no path exists
        """
        if start_id not in self._graph or end_id not in self._graph:
            return None

        view = self._graph
        if edge_types:
            allowed = {et.value for et in edge_types}

            def edge_filter(u, v, key):
                return self._graph[u][v][key].get("edge_type") in allowed

            view = nx.subgraph_view(self._graph, filter_edge=edge_filter)
        try:
            return nx.shortest_path(view.to_undirected(as_view=True), start_id, end_id)
        except nx.NetworkXNoPath:
            return None

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def export_to_json(self) -> dict:
        """Export graph to JSON-serializable dict."""
        return nx.node_link_data(self._graph, edges="links")

    def import_from_json(self, data: dict) -> None:
        """Import graph from JSON data."""
        self._graph = nx.node_link_graph(data, multigraph=True, directed=True, edges="links")

    # =========================================================================
    # STATISTICS
    # =========================================================================

    @property
    def node_count(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def get_stats(self) -> dict:
        """Get graph statistics."""
        type_counts = {}
        for _, data in self._graph.nodes(data=True):
            node_type = data.get("node_type", "unknown")
            type_counts[node_type] = type_counts.get(node_type, 0) + 1

        edge_type_counts = {}
        for _, _, data in self._graph.edges(data=True):
            edge_type = data.get("edge_type", "unknown")
            edge_type_counts[edge_type] = edge_type_counts.get(edge_type, 0) + 1

        return {
            "total_nodes": self.node_count,
            "total_edges": self.edge_count,
            "nodes_by_type": type_counts,
            "edges_by_type": edge_type_counts,
        }

    def __repr__(self) -> str:
        return f"WorldGraph(nodes={self.node_count}, edges={self.edge_count})"
