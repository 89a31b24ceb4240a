import logging
from uuid import UUID
from fastapi import APIRouter, Depends, status, HTTPException, Header, Query, Request
from neo4j import AsyncDriver
from wayfinder.api.idempotency import IdempotentAPIRoute
from wayfinder.core.config import settings
from wayfinder.core.exceptions import AIGenerationException
from wayfinder.core.limiter import limiter
from wayfinder.db.driver import get_db_driver
from wayfinder.db.repositories.graph_repository import GraphRepository
from wayfinder.db.repositories.journal_repository import JournalRepository
from wayfinder.models.graph import (
    CuriosityMap,
    DiscoveryPromptsResponse,
    LateralConnection,
    LateralLink,
    LateralLinkCreate,
    LateralLinkUpdate,
    MicroDiscoveryPrompt,
    RelationType,
    SeedCreate,
    SeedOut,
    SidewaysResponse,
)
from wayfinder.models.journal import (
    MicroDiscoveryCreate,
    MicroDiscoveryOut,
    ReflectionCreate,
    ReflectionList,
    ReflectionOut,
    SelfNarrativeOut,
)
from wayfinder.models.prompt import PromptDocument, PromptUpdate
from wayfinder.services.ai_service import AIService
from wayfinder.services.graph_service import GraphService
from wayfinder.services.journal_service import JournalService
from wayfinder.services.prompt_service import PromptService

logger = logging.getLogger(__name__)

router = APIRouter()
router.route_class = IdempotentAPIRoute

prompt_service = PromptService()

# Authentication is bypassed: the header only selects whose journal is used.
def get_user_id(
    x_user_id: str | None = Header(None, description="Identifier of the journal owner; defaults to the shared user.")
) -> str:
    return (x_user_id or "").strip() or settings.DEFAULT_USER_ID

def get_prompt_service() -> PromptService:
    return prompt_service

def get_ai_service(prompt_service: PromptService = Depends(get_prompt_service)) -> AIService:
    return AIService(api_key=settings.GEMINI_API_KEY, prompt_service=prompt_service)

def get_service(
    driver: AsyncDriver = Depends(get_db_driver),
    ai_service: AIService = Depends(get_ai_service),
) -> GraphService:
    return GraphService(GraphRepository(driver), ai_service)

def get_journal_service(
    driver: AsyncDriver = Depends(get_db_driver),
    graph_service: GraphService = Depends(get_service),
    ai_service: AIService = Depends(get_ai_service),
) -> JournalService:
    return JournalService(JournalRepository(driver), graph_service, ai_service)

def _ai_failure(detail: str, exc: AIGenerationException) -> HTTPException:
    logger.error("%s: %s", detail, exc.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

# --- Seeds ---

@router.post("/seeds", status_code=status.HTTP_201_CREATED, response_model=SeedOut, tags=["Seeds"])
@limiter.limit("30/minute")
async def create_seed(
    request: Request,
    seed_data: SeedCreate,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    """Records an idea seed and the concept node exploration starts from."""
    return await service.create_seed(seed_data.text, user_id)

@router.get("/seeds", response_model=list[SeedOut], tags=["Seeds"])
async def list_seeds(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    return await service.list_seeds(user_id, limit, offset)

# --- Exploration ---

@router.get("/nodes/{node_id}/sideways", response_model=SidewaysResponse, tags=["Exploration"])
@limiter.limit("20/minute")
async def get_sideways_connections(
    request: Request,
    node_id: UUID,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    """Asks the language model for lateral connections of a node's concept."""
    try:
        return await service.suggest_sideways(node_id, user_id)
    except AIGenerationException as e:
        raise _ai_failure("Failed to generate lateral connections", e)

@router.get("/nodes/{node_id}/discovery-prompts", response_model=DiscoveryPromptsResponse, tags=["Exploration"])
@limiter.limit("20/minute")
async def get_discovery_prompts(
    request: Request,
    node_id: UUID,
    connection_concept: str = Query(..., min_length=1),
    connection_reason: str = Query(..., min_length=1),
    connection_type: RelationType = Query(...),
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    connection = LateralConnection(concept=connection_concept, reason=connection_reason, type=connection_type)
    try:
        return await service.discovery_prompts(node_id, connection, user_id)
    except AIGenerationException as e:
        raise _ai_failure("Failed to generate discovery prompts", e)

@router.get("/nodes/{node_id}/micro-discovery", response_model=MicroDiscoveryPrompt, tags=["Exploration"])
@limiter.limit("20/minute")
async def get_micro_discovery_prompt(
    request: Request,
    node_id: UUID,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    try:
        return await service.micro_discovery_prompt(node_id, user_id)
    except AIGenerationException as e:
        raise _ai_failure("Failed to generate micro-discovery prompt", e)

@router.post("/micro-discoveries", status_code=status.HTTP_201_CREATED, response_model=MicroDiscoveryOut, tags=["Exploration"])
@limiter.limit("30/minute")
async def create_micro_discovery(
    request: Request,
    discovery: MicroDiscoveryCreate,
    user_id: str = Depends(get_user_id),
    service: JournalService = Depends(get_journal_service)
):
    """Stores the user's answer and, when a connection was chosen, grows the map by one sideways node."""
    return await service.record_micro_discovery(discovery, user_id)

# --- Reflections ---

@router.post("/reflections", status_code=status.HTTP_201_CREATED, response_model=ReflectionOut, tags=["Reflections"])
@limiter.limit("30/minute")
async def create_reflection(
    request: Request,
    reflection: ReflectionCreate,
    user_id: str = Depends(get_user_id),
    service: JournalService = Depends(get_journal_service)
):
    return await service.create_reflection(reflection, user_id)

@router.get("/reflections", response_model=ReflectionList, tags=["Reflections"])
async def list_reflections(
    tag: str | None = Query(None),
    user_id: str = Depends(get_user_id),
    service: JournalService = Depends(get_journal_service)
):
    return await service.list_reflections(user_id, tag)

# --- Lateral links ---

@router.post("/lateral-links", status_code=status.HTTP_201_CREATED, response_model=LateralLink, tags=["Lateral Links"])
@limiter.limit("60/minute")
async def create_lateral_link(
    request: Request,
    link: LateralLinkCreate,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    return await service.create_link(link, user_id)

@router.patch("/lateral-links/{link_id}", response_model=LateralLink, tags=["Lateral Links"])
@limiter.limit("60/minute")
async def update_lateral_link(
    request: Request,
    link_id: UUID,
    link_update: LateralLinkUpdate,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    return await service.update_link(link_id, link_update.relation, user_id)

@router.delete("/lateral-links/{link_id}", tags=["Lateral Links"])
@limiter.limit("60/minute")
async def delete_lateral_link(
    request: Request,
    link_id: UUID,
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    await service.delete_link(link_id, user_id)
    return {"message": "Lateral link deleted successfully", "id": str(link_id)}

# --- Curiosity map ---

@router.get("/curiosity-map", response_model=CuriosityMap, response_model_exclude_none=True, tags=["Curiosity Map"])
async def get_curiosity_map(
    layout: bool = Query(False, description="Include force-directed positions for every node."),
    iterations: int | None = Query(None, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    service: GraphService = Depends(get_service)
):
    return await service.get_curiosity_map(user_id, with_layout=layout, iterations=iterations)

# --- Self narrative ---

@router.post("/self-narrative", response_model=SelfNarrativeOut, tags=["Self Narrative"])
@limiter.limit("5/minute")
async def generate_self_narrative(
    request: Request,
    user_id: str = Depends(get_user_id),
    service: JournalService = Depends(get_journal_service)
):
    try:
        return await service.generate_narrative(user_id)
    except AIGenerationException as e:
        raise _ai_failure("Failed to generate self-narrative", e)

@router.get("/self-narrative", response_model=SelfNarrativeOut, tags=["Self Narrative"])
async def get_self_narrative(
    user_id: str = Depends(get_user_id),
    service: JournalService = Depends(get_journal_service)
):
    return await service.latest_narrative(user_id)

# --- Prompts ---

@router.get("/prompts", response_model=list[PromptDocument], tags=["Prompts"])
async def list_prompts(prompt_service: PromptService = Depends(get_prompt_service)):
    return await prompt_service.list_prompts()

@router.get("/prompts/{prompt_key}", response_model=PromptDocument, tags=["Prompts"])
async def get_prompt(
    prompt_key: str,
    prompt_service: PromptService = Depends(get_prompt_service)
):
    normalized_key = prompt_service.normalize_key(prompt_key)
    try:
        prompt_text = await prompt_service.get_prompt(normalized_key)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
    is_default = not await prompt_service.is_overridden(normalized_key)
    return PromptDocument(key=normalized_key, prompt=prompt_text, is_default=is_default)

@router.put("/prompts/{prompt_key}", response_model=PromptDocument, tags=["Prompts"])
async def update_prompt(
    prompt_key: str,
    prompt_update: PromptUpdate,
    prompt_service: PromptService = Depends(get_prompt_service)
):
    normalized_key = prompt_service.normalize_key(prompt_key)
    try:
        updated_prompt = await prompt_service.upsert_prompt(normalized_key, prompt_update.prompt)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return PromptDocument(key=normalized_key, prompt=updated_prompt, is_default=False)

@router.post("/prompts/{prompt_key}/reset", response_model=PromptDocument, tags=["Prompts"])
async def reset_prompt(
    prompt_key: str,
    prompt_service: PromptService = Depends(get_prompt_service)
):
    normalized_key = prompt_service.normalize_key(prompt_key)
    try:
        default_prompt = await prompt_service.reset_prompt(normalized_key)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
    return PromptDocument(key=normalized_key, prompt=default_prompt, is_default=True)
