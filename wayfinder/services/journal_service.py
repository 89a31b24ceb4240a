import asyncio
import json
import logging
from collections import Counter
from wayfinder.core.exceptions import NarrativeNotFoundException
from wayfinder.db.repositories.journal_repository import JournalRepository
from wayfinder.models.journal import (
    MicroDiscovery,
    MicroDiscoveryCreate,
    MicroDiscoveryOut,
    NewNodeOut,
    Reflection,
    ReflectionCreate,
    ReflectionList,
    ReflectionOut,
    SelfNarrative,
    SelfNarrativeOut,
)
from wayfinder.services.ai_service import AIService
from wayfinder.services.graph_service import GraphService
from wayfinder.services.retry import with_retry

logger = logging.getLogger(__name__)

SUMMARY_REFLECTION_WINDOW = 50
SUMMARY_CONCEPT_WINDOW = 20
SUMMARY_TOP_TAGS = 5
SUMMARY_EXAMPLE_REFLECTIONS = 3
SUMMARY_CONCEPTS = 5
EMPTY_SUMMARY = "User has just started exploring."


def build_activity_summary(reflections: list[Reflection], concepts: list[str]) -> str:
    """
    Condense recent activity into the plain-text brief sent to the narrative prompt.

    ``reflections`` and ``concepts`` are expected newest first. Ties between
    equally frequent tags keep the order in which the tags were first seen.
    """
    tag_counts = Counter(reflection.tag for reflection in reflections)
    top_tags = [tag for tag, _ in tag_counts.most_common(SUMMARY_TOP_TAGS)]

    examples = [
        f'- "{reflection.surprise}"'
        for reflection in reflections
        if reflection.surprise
    ][:SUMMARY_EXAMPLE_REFLECTIONS]

    sections = []
    if top_tags:
        sections.append(f"User tags used most frequently: {', '.join(top_tags)}")
    if examples:
        sections.append("Example reflections:\n" + "\n".join(examples))
    if concepts:
        sections.append(f"User often explores: {', '.join(concepts[:SUMMARY_CONCEPTS])}")

    return "\n\n".join(sections) or EMPTY_SUMMARY


class JournalService:
    def __init__(self, repo: JournalRepository, graph_service: GraphService, ai_service: AIService):
        self.repo = repo
        self.graph_service = graph_service
        self.ai_service = ai_service

    async def record_micro_discovery(self, data: MicroDiscoveryCreate, user_id: str) -> MicroDiscoveryOut:
        node = await self.graph_service.get_owned_node(data.node_id, user_id)

        discovery = MicroDiscovery(
            user_id=user_id,
            node_id=node.id,
            prompt=json.dumps(data.questions),
            response=data.response,
        )
        await with_retry(self.repo.add_micro_discovery, discovery)

        new_node = None
        lateral_link = None
        connection = data.connection
        if connection is not None and connection.concept.strip():
            created_node, lateral_link = await self.graph_service.branch_sideways(
                node, connection.concept, connection.type, connection.reason
            )
            new_node = NewNodeOut(
                id=created_node.id, concept=created_node.concept, generated_via=created_node.generated_via
            )

        return MicroDiscoveryOut(
            **discovery.model_dump(exclude={"user_id"}),
            new_node=new_node,
            lateral_link=lateral_link,
        )

    async def create_reflection(self, data: ReflectionCreate, user_id: str) -> ReflectionOut:
        node = await self.graph_service.get_owned_node(data.node_id, user_id)
        reflection = Reflection(
            user_id=user_id,
            node_id=node.id,
            tag=data.tag,
            surprise=data.surprise,
            metaphor=data.metaphor,
        )
        await with_retry(self.repo.add_reflection, reflection)
        return ReflectionOut(**reflection.model_dump(exclude={"user_id"}))

    async def list_reflections(self, user_id: str, tag: str | None = None) -> ReflectionList:
        reflections, tag_counts = await asyncio.gather(
            with_retry(self.repo.list_reflections, user_id, tag),
            with_retry(self.repo.tag_counts, user_id),
        )
        return ReflectionList(reflections=reflections, tag_counts=tag_counts)

    async def build_summary(self, user_id: str) -> str:
        reflections, concepts = await asyncio.gather(
            with_retry(self.repo.recent_reflections, user_id, SUMMARY_REFLECTION_WINDOW),
            with_retry(self.repo.recent_concepts, user_id, SUMMARY_CONCEPT_WINDOW),
        )
        return build_activity_summary(reflections, concepts)

    async def generate_narrative(self, user_id: str) -> SelfNarrativeOut:
        summary = await self.build_summary(user_id)
        logger.debug("Narrative summary for %s:\n%s", user_id, summary)
        text = await self.ai_service.generate_self_narrative(summary)
        narrative = SelfNarrative(user_id=user_id, narrative=text)
        await with_retry(self.repo.add_narrative, narrative)
        return SelfNarrativeOut(**narrative.model_dump(exclude={"user_id"}))

    async def latest_narrative(self, user_id: str) -> SelfNarrativeOut:
        narrative = await with_retry(self.repo.latest_narrative, user_id)
        if narrative is None:
            raise NarrativeNotFoundException()
        return SelfNarrativeOut(**narrative.model_dump(exclude={"user_id"}))
