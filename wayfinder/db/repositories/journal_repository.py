from neo4j import AsyncDriver
from wayfinder.models.journal import (
    MicroDiscovery,
    MicroDiscoveryRef,
    Reflection,
    ReflectionDetail,
    ReflectionNode,
    SeedRef,
    SelfNarrative,
    TagCount,
)

def reflection_from_props(props) -> Reflection:
    return Reflection(
        id=props["id"],
        user_id=props["userId"],
        node_id=props["nodeId"],
        tag=props["tag"],
        surprise=props.get("surprise"),
        metaphor=props.get("metaphor"),
        created_at=props["createdAt"],
    )

def narrative_from_props(props) -> SelfNarrative:
    return SelfNarrative(
        id=props["id"],
        user_id=props["userId"],
        narrative=props["narrative"],
        created_at=props["createdAt"],
    )

class JournalRepository:
    """Cypher access for the user's reflective writing: micro-discoveries, reflections, narratives."""

    def __init__(self, driver: AsyncDriver):
        self.driver = driver

    async def add_micro_discovery(self, discovery: MicroDiscovery) -> MicroDiscovery:
        query = """
        CREATE (d:MicroDiscovery {
            id: $id, userId: $userId, nodeId: $nodeId,
            prompt: $prompt, response: $response, createdAt: $createdAt
        })
        """
        async with self.driver.session() as session:
            result = await session.run(query, {
                "id": str(discovery.id),
                "userId": discovery.user_id,
                "nodeId": str(discovery.node_id),
                "prompt": discovery.prompt,
                "response": discovery.response,
                "createdAt": discovery.created_at.isoformat(),
            })
            await result.consume()
            return discovery

    async def add_reflection(self, reflection: Reflection) -> Reflection:
        query = "CREATE (r:Reflection) SET r = $props"
        props = {
            "id": str(reflection.id),
            "userId": reflection.user_id,
            "nodeId": str(reflection.node_id),
            "tag": reflection.tag,
            "surprise": reflection.surprise,
            "metaphor": reflection.metaphor,
            "createdAt": reflection.created_at.isoformat(),
        }
        async with self.driver.session() as session:
            result = await session.run(query, {"props": {k: v for k, v in props.items() if v is not None}})
            await result.consume()
            return reflection

    async def list_reflections(self, user_id: str, tag: str | None = None) -> list[ReflectionDetail]:
        query = """
        MATCH (r:Reflection {userId: $userId})
        WHERE $tag IS NULL OR r.tag = $tag
        MATCH (n:Concept {id: r.nodeId})
        OPTIONAL MATCH (s:Seed {id: n.seedId})
        OPTIONAL MATCH (d:MicroDiscovery {nodeId: n.id})
        WITH r, n, s, d ORDER BY d.createdAt DESC
        WITH r, n, s, collect(d)[0] AS latest
        RETURN r, n, s, latest
        ORDER BY r.createdAt DESC
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id, "tag": tag})
            records = [record async for record in result]

        details = []
        for record in records:
            reflection = reflection_from_props(record["r"])
            node_props = record["n"]
            seed_props = record["s"]
            latest = record["latest"]
            details.append(
                ReflectionDetail(
                    **reflection.model_dump(exclude={"user_id"}),
                    node=ReflectionNode(
                        id=node_props["id"],
                        concept=node_props["concept"],
                        generated_via=node_props.get("generatedVia") or "seed",
                        seed=SeedRef(id=seed_props["id"], text=seed_props["text"]) if seed_props else None,
                        micro_discovery=MicroDiscoveryRef(
                            id=latest["id"], prompt=latest["prompt"], response=latest["response"]
                        ) if latest else None,
                    ),
                )
            )
        return details

    async def tag_counts(self, user_id: str) -> list[TagCount]:
        query = """
        MATCH (r:Reflection {userId: $userId})
        RETURN r.tag AS tag, count(*) AS count
        ORDER BY count DESC, tag ASC
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id})
            records = [record async for record in result]
            return [TagCount(tag=record["tag"], count=record["count"]) for record in records]

    async def recent_reflections(self, user_id: str, limit: int) -> list[Reflection]:
        query = """
        MATCH (r:Reflection {userId: $userId})
        RETURN r ORDER BY r.createdAt DESC LIMIT $limit
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id, "limit": limit})
            records = [record async for record in result]
            return [reflection_from_props(record["r"]) for record in records]

    async def recent_concepts(self, user_id: str, limit: int) -> list[str]:
        query = """
        MATCH (n:Concept {userId: $userId})
        RETURN n.concept AS concept ORDER BY n.createdAt DESC LIMIT $limit
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id, "limit": limit})
            return [record["concept"] async for record in result]

    async def add_narrative(self, narrative: SelfNarrative) -> SelfNarrative:
        query = """
        CREATE (s:Narrative {id: $id, userId: $userId, narrative: $narrative, createdAt: $createdAt})
        """
        async with self.driver.session() as session:
            result = await session.run(query, {
                "id": str(narrative.id),
                "userId": narrative.user_id,
                "narrative": narrative.narrative,
                "createdAt": narrative.created_at.isoformat(),
            })
            await result.consume()
            return narrative

    async def latest_narrative(self, user_id: str) -> SelfNarrative | None:
        query = """
        MATCH (s:Narrative {userId: $userId})
        RETURN s ORDER BY s.createdAt DESC LIMIT 1
        """
        async with self.driver.session() as session:
            result = await session.run(query, {"userId": user_id})
            record = await result.single()
            return narrative_from_props(record["s"]) if record else None

