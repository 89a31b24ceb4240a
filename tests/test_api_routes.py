from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from tests.fakes import FakeAIService, FakeGraphRepository, FakeJournalRepository
from wayfinder.api import router as api_router
from wayfinder.core.config import settings
from wayfinder.core.limiter import limiter
from wayfinder.main import app
from wayfinder.services.graph_service import GraphService
from wayfinder.services.journal_service import JournalService

HEADERS = {"X-User-ID": "alice"}


@pytest.fixture
def state():
    return {
        "graph_repo": FakeGraphRepository(),
        "journal_repo": FakeJournalRepository(),
        "ai": FakeAIService(),
    }


@pytest.fixture
def client(state):
    def _graph_service():
        return GraphService(state["graph_repo"], state["ai"])

    def _journal_service():
        return JournalService(state["journal_repo"], _graph_service(), state["ai"])

    app.dependency_overrides[api_router.get_service] = _graph_service
    app.dependency_overrides[api_router.get_journal_service] = _journal_service
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_seed(client, text="Murmurations", headers=HEADERS):
    response = client.post("/seeds", json={"text": text}, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_create_and_list_seeds(client):
    seed = _create_seed(client, "  Murmurations  ")

    assert seed["text"] == "Murmurations"
    assert seed["node_id"]

    listed = client.get("/seeds", headers=HEADERS).json()
    assert [s["id"] for s in listed] == [seed["id"]]


def test_blank_seed_is_rejected(client):
    response = client.post("/seeds", json={"text": "   "}, headers=HEADERS)
    assert response.status_code == 422


def test_missing_user_header_uses_default_user(client, state):
    seed = _create_seed(client, headers={})

    node = state["graph_repo"].nodes[next(iter(state["graph_repo"].nodes))]
    assert node.user_id == settings.DEFAULT_USER_ID
    assert client.get("/seeds").json()[0]["id"] == seed["id"]


def test_sideways_connections(client):
    seed = _create_seed(client)

    response = client.get(f"/nodes/{seed['node_id']}/sideways", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["node"]["concept"] == "Murmurations"
    assert {c["type"] for c in body["connections"]} == {"analogy", "contrast"}


def test_sideways_errors(client, state):
    seed = _create_seed(client)

    assert client.get(f"/nodes/{uuid4()}/sideways", headers=HEADERS).status_code == 404
    foreign = client.get(f"/nodes/{seed['node_id']}/sideways", headers={"X-User-ID": "mallory"})
    assert foreign.status_code == 401
    assert foreign.json() == {"message": "Unauthorized"}

    state["ai"].fail = True
    failed = client.get(f"/nodes/{seed['node_id']}/sideways", headers=HEADERS)
    assert failed.status_code == 500
    assert failed.json()["detail"] == "Failed to generate lateral connections"


def test_discovery_prompts_require_connection_params(client):
    seed = _create_seed(client)
    url = f"/nodes/{seed['node_id']}/discovery-prompts"

    assert client.get(url, params={"connection_concept": "Schools of fish"}, headers=HEADERS).status_code == 422

    response = client.get(
        url,
        params={
            "connection_concept": "Schools of fish",
            "connection_reason": "Collective motion.",
            "connection_type": "analogy",
        },
        headers=HEADERS,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["seed_concept"] == "Murmurations"
    assert body["lateral_connection"]["concept"] == "Schools of fish"
    assert body["questions"] == ["What repeats?"]


def test_micro_discovery_prompt(client):
    seed = _create_seed(client)

    response = client.get(f"/nodes/{seed['node_id']}/micro-discovery", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["prompt"] == "Sketch Murmurations as a map."


def test_micro_discovery_creates_sideways_node_and_map_edge(client):
    seed = _create_seed(client)

    response = client.post(
        "/micro-discoveries",
        json={
            "node_id": seed["node_id"],
            "response": "Local rules, global shape.",
            "questions": ["What repeats?"],
            "connection": {"concept": "Schools of fish", "type": "analogy", "reason": "Collective motion."},
        },
        headers=HEADERS,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["new_node"]["generated_via"] == "sideways"

    curiosity_map = client.get("/curiosity-map", params={"layout": True}, headers=HEADERS).json()
    assert len(curiosity_map["nodes"]) == 2
    assert curiosity_map["edges"][0]["relation"] == "analogy"
    assert set(curiosity_map["positions"]) == {node["id"] for node in curiosity_map["nodes"]}
    assert curiosity_map["skipped_edges"] == 0


def test_curiosity_map_without_layout_omits_positions(client):
    _create_seed(client)

    body = client.get("/curiosity-map", headers=HEADERS).json()

    assert "positions" not in body
    assert len(body["nodes"]) == 1


def test_micro_discovery_validation(client):
    seed = _create_seed(client)

    blank = client.post(
        "/micro-discoveries",
        json={"node_id": seed["node_id"], "response": "  ", "questions": []},
        headers=HEADERS,
    )
    assert blank.status_code == 422

    not_a_list = client.post(
        "/micro-discoveries",
        json={"node_id": seed["node_id"], "response": "ok", "questions": "why"},
        headers=HEADERS,
    )
    assert not_a_list.status_code == 422


def test_reflection_flow(client):
    seed = _create_seed(client)

    created = client.post(
        "/reflections",
        json={"node_id": seed["node_id"], "tag": " emergence ", "surprise": "", "metaphor": "a flock"},
        headers=HEADERS,
    )
    assert created.status_code == 201
    assert created.json()["tag"] == "emergence"
    assert created.json()["surprise"] is None

    missing_tag = client.post("/reflections", json={"node_id": seed["node_id"], "tag": ""}, headers=HEADERS)
    assert missing_tag.status_code == 422

    listed = client.get("/reflections", params={"tag": "emergence"}, headers=HEADERS)
    assert listed.status_code == 200
    assert set(listed.json()) == {"reflections", "tag_counts"}


def test_lateral_link_lifecycle(client):
    first = _create_seed(client, "Murmurations")["node_id"]
    second = _create_seed(client, "Traffic jams")["node_id"]

    self_loop = client.post(
        "/lateral-links",
        json={"from_node_id": first, "to_node_id": first, "relation": "pattern"},
        headers=HEADERS,
    )
    assert self_loop.status_code == 400

    bad_relation = client.post(
        "/lateral-links",
        json={"from_node_id": first, "to_node_id": second, "relation": "parent"},
        headers=HEADERS,
    )
    assert bad_relation.status_code == 422

    created = client.post(
        "/lateral-links",
        json={"from_node_id": first, "to_node_id": second, "relation": "pattern"},
        headers=HEADERS,
    )
    assert created.status_code == 201
    link_id = created.json()["id"]

    duplicate = client.post(
        "/lateral-links",
        json={"from_node_id": first, "to_node_id": second, "relation": "contrast"},
        headers=HEADERS,
    )
    assert duplicate.status_code == 409

    patched = client.patch(f"/lateral-links/{link_id}", json={"relation": "contrast"}, headers=HEADERS)
    assert patched.status_code == 200
    assert patched.json()["relation"] == "contrast"

    foreign = client.delete(f"/lateral-links/{link_id}", headers={"X-User-ID": "mallory"})
    assert foreign.status_code == 401

    deleted = client.delete(f"/lateral-links/{link_id}", headers=HEADERS)
    assert deleted.json() == {"message": "Lateral link deleted successfully", "id": link_id}
    assert client.delete(f"/lateral-links/{link_id}", headers=HEADERS).status_code == 404


def test_self_narrative_endpoints(client, state):
    missing = client.get("/self-narrative", headers=HEADERS)
    assert missing.status_code == 404
    assert missing.json() == {"message": "No narrative found. Generate one first."}

    created = client.post("/self-narrative", headers=HEADERS)
    assert created.status_code == 200
    assert created.json()["narrative"] == "You tend to look for hidden flows."

    latest = client.get("/self-narrative", headers=HEADERS)
    assert latest.json()["id"] == created.json()["id"]

    state["ai"].fail = True
    failed = client.post("/self-narrative", headers=HEADERS)
    assert failed.status_code == 500
    assert failed.json()["detail"] == "Failed to generate self-narrative"


def test_prompt_endpoints(client, tmp_path, monkeypatch):
    monkeypatch.setattr(api_router.prompt_service, "store_path", tmp_path / "prompts.json")

    fetched = client.get("/prompts/self_narrative")
    assert fetched.status_code == 200
    assert fetched.json()["key"] == "self-narrative"
    assert fetched.json()["is_default"] is True

    updated = client.put("/prompts/self-narrative", json={"prompt": "Summarize {summary}"})
    assert updated.json()["is_default"] is False
    assert client.get("/prompts/self-narrative").json()["prompt"] == "Summarize {summary}"

    reset = client.post("/prompts/self-narrative/reset")
    assert reset.json()["is_default"] is True

    listed = client.get("/prompts").json()
    assert {document["key"] for document in listed} >= {"self-narrative", "lateral-connections"}

    assert client.get("/prompts/unknown").status_code == 404
    assert client.put("/prompts/self-narrative", json={"prompt": " "}).status_code == 400
    assert client.put("/prompts/self-narrative", json={"prompt": "No placeholders"}).status_code == 400
