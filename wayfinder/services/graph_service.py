import asyncio
import logging
from uuid import UUID
from wayfinder.core.exceptions import (
    DuplicateLinkException,
    InvalidLinkException,
    LinkNotFoundException,
    NodeNotFoundException,
    OwnershipException,
)
from wayfinder.db.repositories.graph_repository import GraphRepository
from wayfinder.models.graph import (
    ConceptNode,
    CuriosityMap,
    DiscoveryPromptsResponse,
    GeneratedVia,
    LateralConnection,
    LateralLink,
    LateralLinkCreate,
    MapEdge,
    MapNode,
    MicroDiscoveryPrompt,
    NodeRef,
    RelationType,
    Seed,
    SeedOut,
    SidewaysResponse,
)
from wayfinder.models.layout import LayoutConfig
from wayfinder.services.ai_service import AIService
from wayfinder.services.graph_layout import compute_layout, count_skipped_edges
from wayfinder.services.retry import with_retry

logger = logging.getLogger(__name__)

class GraphService:
    def __init__(self, repo: GraphRepository, ai_service: AIService, layout_config: LayoutConfig | None = None):
        self.repo = repo
        self.ai_service = ai_service
        self.layout_config = layout_config or LayoutConfig()

    async def create_seed(self, text: str, user_id: str) -> SeedOut:
        """Records an idea seed together with the concept node that starts its exploration."""
        seed = Seed(user_id=user_id, text=text)
        node = ConceptNode(user_id=user_id, seed_id=seed.id, concept=text, generated_via=GeneratedVia.SEED)
        await with_retry(self.repo.add_seed_with_node, seed, node)
        logger.info("Created seed %s with node %s", seed.id, node.id)
        return SeedOut(id=seed.id, text=seed.text, created_at=seed.created_at, node_id=node.id)

    async def list_seeds(self, user_id: str, limit: int = 50, offset: int = 0) -> list[SeedOut]:
        seeds = await with_retry(self.repo.list_seeds, user_id, limit, offset)
        node_ids = await asyncio.gather(*[with_retry(self.repo.get_seed_node_id, seed.id) for seed in seeds])
        return [
            SeedOut(id=seed.id, text=seed.text, created_at=seed.created_at, node_id=node_id)
            for seed, node_id in zip(seeds, node_ids)
        ]

    async def get_owned_node(self, node_id: UUID, user_id: str) -> ConceptNode:
        node = await with_retry(self.repo.get_node_by_id, node_id)
        if node is None:
            raise NodeNotFoundException()
        if node.user_id != user_id:
            raise OwnershipException()
        return node

    async def suggest_sideways(self, node_id: UUID, user_id: str) -> SidewaysResponse:
        node = await self.get_owned_node(node_id, user_id)
        connections = await self.ai_service.generate_lateral_connections(node.concept)
        return SidewaysResponse(node=NodeRef(id=node.id, concept=node.concept), connections=connections)

    async def micro_discovery_prompt(self, node_id: UUID, user_id: str) -> MicroDiscoveryPrompt:
        node = await self.get_owned_node(node_id, user_id)
        prompt = await self.ai_service.generate_micro_discovery(node.concept)
        return MicroDiscoveryPrompt(node=NodeRef(id=node.id, concept=node.concept), prompt=prompt)

    async def discovery_prompts(
        self, node_id: UUID, connection: LateralConnection, user_id: str
    ) -> DiscoveryPromptsResponse:
        node = await self.get_owned_node(node_id, user_id)
        prompts = await self.ai_service.generate_discovery_prompts(node.concept, connection)
        return DiscoveryPromptsResponse(
            seed_concept=node.concept,
            lateral_connection=connection,
            bridging_text=prompts.bridging_text,
            questions=prompts.questions,
        )

    async def branch_sideways(
        self, parent: ConceptNode, concept: str, relation: RelationType, reason: str | None
    ) -> tuple[ConceptNode, LateralLink]:
        """Adds the chosen lateral connection as a new node linked from its parent."""
        node = ConceptNode(
            user_id=parent.user_id,
            seed_id=parent.seed_id,
            concept=concept.strip(),
            generated_via=GeneratedVia.SIDEWAYS,
            metadata={"reason": reason, "parent_node_id": parent.id},
        )
        link = LateralLink(from_node=parent.id, to_node=node.id, relation=relation)
        await with_retry(self.repo.add_node_with_link, node, link)
        return node, link

    async def create_link(self, link_data: LateralLinkCreate, user_id: str) -> LateralLink:
        if link_data.from_node_id == link_data.to_node_id:
            raise InvalidLinkException()

        from_node, to_node = await asyncio.gather(
            with_retry(self.repo.get_node_by_id, link_data.from_node_id),
            with_retry(self.repo.get_node_by_id, link_data.to_node_id),
        )
        if from_node is None or to_node is None:
            raise NodeNotFoundException("One or both nodes not found")
        if from_node.user_id != user_id or to_node.user_id != user_id:
            raise OwnershipException("Unauthorized to create connection between these nodes")

        if await with_retry(self.repo.find_link_between, from_node.id, to_node.id) is not None:
            raise DuplicateLinkException()

        link = LateralLink(from_node=from_node.id, to_node=to_node.id, relation=link_data.relation)
        created = await with_retry(self.repo.add_link, link)
        if created is None:
            # A node vanished between the lookup and the write.
            raise NodeNotFoundException("One or both nodes not found")
        return created

    async def _get_owned_link(self, link_id: UUID, user_id: str, action: str) -> LateralLink:
        found = await with_retry(self.repo.get_link_with_owner, link_id)
        if found is None:
            raise LinkNotFoundException()
        link, owner = found
        if owner != user_id:
            raise OwnershipException(f"Unauthorized to {action} this connection")
        return link

    async def update_link(self, link_id: UUID, relation: RelationType, user_id: str) -> LateralLink:
        await self._get_owned_link(link_id, user_id, "update")
        updated = await with_retry(self.repo.update_link_relation, link_id, relation)
        if updated is None:
            raise LinkNotFoundException()
        return updated

    async def delete_link(self, link_id: UUID, user_id: str) -> None:
        await self._get_owned_link(link_id, user_id, "delete")
        if not await with_retry(self.repo.delete_link, link_id):
            raise LinkNotFoundException()

    async def get_curiosity_map(
        self, user_id: str, with_layout: bool = False, iterations: int | None = None
    ) -> CuriosityMap:
        nodes, links = await asyncio.gather(
            with_retry(self.repo.list_nodes, user_id),
            with_retry(self.repo.list_links, user_id),
        )
        map_nodes = [MapNode(id=str(node.id), concept=node.concept) for node in nodes]
        map_edges = [
            MapEdge(id=str(link.id), from_node=str(link.from_node), to_node=str(link.to_node), relation=link.relation)
            for link in links
        ]
        curiosity_map = CuriosityMap(nodes=map_nodes, edges=map_edges)
        if with_layout:
            config = self.layout_config
            if iterations is not None:
                config = config.model_copy(update={"iterations": iterations})
            curiosity_map.positions = await asyncio.to_thread(compute_layout, map_nodes, map_edges, config)
            curiosity_map.skipped_edges = count_skipped_edges(map_nodes, map_edges)
        return curiosity_map
