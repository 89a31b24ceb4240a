from datetime import datetime
from uuid import UUID
from neo4j import AsyncDriver
from wayfinder.models.graph import (
    ConceptNode,
    GeneratedVia,
    LateralLink,
    NodeMetadata,
    RelationType,
    Seed,
)

def _iso(value: datetime) -> str:
    return value.isoformat()

def seed_from_props(props) -> Seed:
    return Seed(
        id=props["id"],
        user_id=props["userId"],
        text=props["text"],
        created_at=props["createdAt"],
    )

def concept_from_props(props) -> ConceptNode:
    metadata = None
    if props.get("reason") is not None or props.get("parentNodeId") is not None:
        metadata = NodeMetadata(reason=props.get("reason"), parent_node_id=props.get("parentNodeId"))
    return ConceptNode(
        id=props["id"],
        user_id=props["userId"],
        seed_id=props.get("seedId"),
        concept=props["concept"],
        generated_via=props.get("generatedVia") or GeneratedVia.SEED,
        metadata=metadata,
        created_at=props["createdAt"],
    )

def concept_to_props(node: ConceptNode) -> dict:
    return {
        "id": str(node.id),
        "userId": node.user_id,
        "seedId": str(node.seed_id) if node.seed_id else None,
        "concept": node.concept,
        "generatedVia": node.generated_via.value,
        "reason": node.metadata.reason if node.metadata else None,
        "parentNodeId": str(node.metadata.parent_node_id) if node.metadata and node.metadata.parent_node_id else None,
        "createdAt": _iso(node.created_at),
    }

def link_from_record(record) -> LateralLink:
    return LateralLink(
        id=record["id"],
        from_node=record["from_node"],
        to_node=record["to_node"],
        relation=record["relation"],
        created_at=record["created_at"],
    )

def link_to_params(link: LateralLink) -> dict:
    return {
        "id": str(link.id),
        "from_id": str(link.from_node),
        "to_id": str(link.to_node),
        "relation": link.relation.value,
        "createdAt": _iso(link.created_at),
    }

_LINK_RETURN = """
RETURN r.id AS id, a.id AS from_node, b.id AS to_node,
       r.relation AS relation, r.createdAt AS created_at
"""

class GraphRepository:
    """Cypher access for seeds, concept nodes and the lateral links between them."""

    def __init__(self, driver: AsyncDriver):
        self.driver = driver

    async def add_seed_with_node(self, seed: Seed, node: ConceptNode) -> None:
        async with self.driver.session() as session:
            await session.execute_write(self._create_seed_with_node, seed, node)

    @staticmethod
    async def _create_seed_with_node(tx, seed: Seed, node: ConceptNode):
        query = """
        CREATE (s:Seed)
        SET s = $seed
        CREATE (n:Concept)
        SET n = $node
        """
        result = await tx.run(query, {
            "seed": {
                "id": str(seed.id),
                "userId": seed.user_id,
                "text": seed.text,
                "createdAt": _iso(seed.created_at),
            },
            "node": {k: v for k, v in concept_to_props(node).items() if v is not None},
        })
        await result.consume()

    async def list_seeds(self, user_id: str, limit: int, offset: int) -> list[Seed]:
        query = """
        MATCH (s:Seed {userId: $userId})
        RETURN s ORDER BY s.createdAt DESC SKIP $offset LIMIT $limit
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id, "offset": offset, "limit": limit})
            records = [record async for record in result]
            return [seed_from_props(record["s"]) for record in records]

    async def get_seed_node_id(self, seed_id: UUID) -> UUID | None:
        query = """
        MATCH (n:Concept {seedId: $seed_id, generatedVia: 'seed'})
        RETURN n.id AS id ORDER BY n.createdAt LIMIT 1
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"seed_id": str(seed_id)})
            record = await result.single()
            return UUID(record["id"]) if record else None

    async def get_node_by_id(self, node_id: UUID) -> ConceptNode | None:
        query = "MATCH (n:Concept {id: $node_id}) RETURN n"
        async with self.driver.session() as session:
            result = await session.run(query, {"node_id": str(node_id)})
            record = await result.single()
            return concept_from_props(record["n"]) if record else None

    async def list_nodes(self, user_id: str) -> list[ConceptNode]:
        query = "MATCH (n:Concept {userId: $userId}) RETURN n ORDER BY n.createdAt DESC"
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id})
            records = [record async for record in result]
            return [concept_from_props(record["n"]) for record in records]

    async def add_node_with_link(self, node: ConceptNode, link: LateralLink) -> None:
        async with self.driver.session() as session:
            await session.execute_write(self._create_node_with_link, node, link)

    @staticmethod
    async def _create_node_with_link(tx, node: ConceptNode, link: LateralLink):
        node_result = await tx.run(
            "CREATE (n:Concept) SET n = $node",
            {"node": {k: v for k, v in concept_to_props(node).items() if v is not None}},
        )
        await node_result.consume()
        link_result = await tx.run(
            """
            MATCH (a:Concept {id: $from_id})
            MATCH (b:Concept {id: $to_id})
            CREATE (a)-[:LATERAL {id: $id, relation: $relation, createdAt: $createdAt}]->(b)
            """,
            link_to_params(link),
        )
        await link_result.consume()

    async def add_link(self, link: LateralLink) -> LateralLink | None:
        query = """
        MATCH (a:Concept {id: $from_id})
        MATCH (b:Concept {id: $to_id})
        CREATE (a)-[r:LATERAL {id: $id, relation: $relation, createdAt: $createdAt}]->(b)
        """ + _LINK_RETURN
        async with self.driver.session() as session:
            result = await session.run(query, link_to_params(link))
            record = await result.single()
            return link_from_record(record) if record else None

    async def find_link_between(self, from_id: UUID, to_id: UUID) -> LateralLink | None:
        query = """
        MATCH (a:Concept {id: $from_id})-[r:LATERAL]->(b:Concept {id: $to_id})
        """ + _LINK_RETURN + " LIMIT 1"
        async with self.driver.session() as session:
            result = await session.run(query, {"from_id": str(from_id), "to_id": str(to_id)})
            record = await result.single()
            return link_from_record(record) if record else None

    async def get_link_with_owner(self, link_id: UUID) -> tuple[LateralLink, str] | None:
        """Returns the link and the user owning its source node."""
        query = """
        MATCH (a:Concept)-[r:LATERAL {id: $link_id}]->(b:Concept)
        RETURN r.id AS id, a.id AS from_node, b.id AS to_node,
               r.relation AS relation, r.createdAt AS created_at, a.userId AS owner
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"link_id": str(link_id)})
            record = await result.single()
            if record is None:
                return None
            return link_from_record(record), record["owner"]

    async def update_link_relation(self, link_id: UUID, relation: RelationType) -> LateralLink | None:
        query = """
        MATCH (a:Concept)-[r:LATERAL {id: $link_id}]->(b:Concept)
        SET r.relation = $relation
        """ + _LINK_RETURN
        async with self.driver.session() as session:
            result = await session.run(query, {"link_id": str(link_id), "relation": relation.value})
            record = await result.single()
            return link_from_record(record) if record else None

    async def delete_link(self, link_id: UUID) -> bool:
        query = "MATCH ()-[r:LATERAL {id: $link_id}]->() DELETE r"
        async with self.driver.session() as session:
            result = await session.run(query, {"link_id": str(link_id)})
            summary = await result.consume()
            return summary.counters.relationships_deleted > 0

    async def list_links(self, user_id: str) -> list[LateralLink]:
        query = """
        MATCH (a:Concept {userId: $userId})-[r:LATERAL]->(b:Concept)
        """ + _LINK_RETURN + " ORDER BY r.createdAt"
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id})
            records = [record async for record in result]
            return [link_from_record(record) for record in records]
