"""
Tests for Relay Server

The lifespan is not run; module globals are patched with a real orchestrator
driven by a mocked executor and a mocked retrieval engine.
"""

import hashlib
import hmac
import json
import pytest
from unittest.mock import AsyncMock, MagicMock

SECRET = "whsec_123"


def _sign(body: bytes) -> str:
    return "sha256=" + hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def registry():
    from relay.common.schemas import Agent, ContextDocument, Inbox
    from relay.pipeline import Registry

    registry = Registry()
    registry.put_agent(Agent(
        id="a1",
        name="Support",
        prompt="Be kind.",
        context_documents=[ContextDocument(id="d1", type="file", content="Refunds take 5 days.", filename="faq.txt")],
    ))
    registry.put_agent(Agent(id="a2", name="Tagger"))

    inbox = Inbox(id="inbox-1", name="Website", webhook_secret=SECRET)
    inbox.assign_response_agent("a1")
    inbox.add_agent("a2", priority=150)
    registry.put_inbox(inbox)
    registry.put_inbox(Inbox(id="inbox-off", name="Old", is_active=False))
    return registry


@pytest.fixture
def executor():
    from relay.pipeline import AgentResult

    async def run(agent, context, override=None, *, stage, priority=None, use_retrieval=False):
        return AgentResult.succeeded(agent, stage, f"{agent.name} says hi", 1.0, priority=priority)

    executor = MagicMock()
    executor.run = AsyncMock(side_effect=run)
    return executor


@pytest.fixture
def engine():
    return MagicMock()


@pytest.fixture
def client(monkeypatch, registry, executor, engine):
    from fastapi.testclient import TestClient
    from relay.gateway import server
    from relay.gateway.handlers import ChatwootHandler
    from relay.pipeline import PipelineOrchestrator

    monkeypatch.setattr(server, "registry", registry)
    monkeypatch.setattr(server, "retrieval_engine", engine)
    monkeypatch.setattr(server, "orchestrator", PipelineOrchestrator(executor, registry=registry))
    monkeypatch.setattr(server, "chatwoot_handler", ChatwootHandler())
    return TestClient(server.app)


def _message(**kwargs):
    payload = {
        "event": "message_created",
        "content": "Can I get a refund?",
        "message_type": "incoming",
        "conversation": {"id": 42},
        "account": {"id": 1},
    }
    payload.update(kwargs)
    return payload


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["initialized"] is True
        assert data["inboxes"] == 2

    def test_rag_health(self, client, engine):
        from relay.retriever import RetrievalHealth

        engine.health.return_value = RetrievalHealth(
            connected=False, model_loaded=True, model_name="mini", store_url="http://q:6333", error="refused",
        )

        data = client.get("/rag/health").json()

        assert data["qdrant"] == {"connected": False, "url": "http://q:6333"}
        assert data["embeddings"]["modelLoaded"] is True
        assert data["error"] == "refused"


class TestWebhook:
    """Tests for POST /webhook/inbox/{inbox_id}"""

    def test_runs_pipeline(self, client, executor):
        body = json.dumps(_message()).encode()

        response = client.post("/webhook/inbox/inbox-1", content=body, headers={"X-Webhook-Secret": _sign(body)})

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["message"] == "Webhook processed successfully"
        data = payload["data"]
        assert data["inbox"] == {"id": "inbox-1", "name": "Website"}
        assert data["event"] == "message_created"
        assert data["status"] == "completed"
        assert data["processing"]["totalAgents"] == 1
        assert data["processing"]["responseAgents"] == 1
        assert data["responseText"] == "Support says hi"
        assert executor.run.await_count == 2

    def test_unsigned_request_accepted(self, client):
        response = client.post("/webhook/inbox/inbox-1", json=_message())

        assert response.status_code == 200

    def test_bad_signature(self, client, executor):
        response = client.post(
            "/webhook/inbox/inbox-1", json=_message(), headers={"X-Webhook-Secret": "sha256=deadbeef"},
        )

        assert response.status_code == 401
        executor.run.assert_not_awaited()

    def test_test_payload_skips_signature(self, client):
        response = client.post(
            "/webhook/inbox/inbox-1", json=_message(test=True), headers={"X-Webhook-Secret": "sha256=deadbeef"},
        )

        assert response.status_code == 200

    @pytest.mark.parametrize("inbox_id", ["missing", "inbox-off"])
    def test_unknown_or_inactive_inbox(self, client, inbox_id):
        response = client.post(f"/webhook/inbox/{inbox_id}", json=_message())

        assert response.status_code == 404

    def test_invalid_json(self, client):
        response = client.post("/webhook/inbox/inbox-1", content=b"{not json")

        assert response.status_code == 400

    def test_body_not_utf8(self, client, executor):
        response = client.post("/webhook/inbox/inbox-1", content=b'{"event": "\xff\xfe"}')

        assert response.status_code == 400
        executor.run.assert_not_awaited()

    def test_non_object_payload(self, client):
        response = client.post("/webhook/inbox/inbox-1", json=["a", "b"])

        assert response.status_code == 400

    def test_other_event_acknowledged(self, client, executor):
        response = client.post("/webhook/inbox/inbox-1", json={"event": "conversation_status_changed"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "acknowledged"
        assert response.json()["message"] == "Event conversation_status_changed acknowledged but not processed"
        executor.run.assert_not_awaited()

    def test_outgoing_skipped(self, client, executor):
        response = client.post("/webhook/inbox/inbox-1", json=_message(message_type="outgoing"))

        assert response.json()["data"]["status"] == "skipped"
        executor.run.assert_not_awaited()

    def test_not_initialized(self, monkeypatch, client):
        from relay.gateway import server

        monkeypatch.setattr(server, "orchestrator", None)

        response = client.post("/webhook/inbox/inbox-1", json=_message())

        assert response.status_code == 503


class TestProcessingOrder:
    def test_order(self, client):
        data = client.get("/inboxes/inbox-1/processing-order").json()["data"]

        assert data["response"] == {"agentId": "a1", "name": "Support"}
        assert [a["agentId"] for a in data["mainProcess"]] == ["a2"]

    def test_missing(self, client):
        assert client.get("/inboxes/missing/processing-order").status_code == 404


class TestRagEndpoints:
    """Tests for the per-agent retrieval endpoints"""

    def test_search(self, client, engine):
        from relay.retriever import RetrievedChunk

        engine.search.return_value = [RetrievedChunk(text="Refunds take 5 days.", score=0.82, document_id="d1")]

        response = client.post(
            "/agents/a1/rag/search",
            json={"query": "refund", "limit": 3, "score_threshold": 0.2, "document_type": "file"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalResults"] == 1
        assert data["results"][0]["metadata"]["documentId"] == "d1"
        engine.search.assert_called_once_with("a1", "refund", 3, 0.2, {"type": "file"})

    def test_search_unknown_agent(self, client):
        assert client.post("/agents/nope/rag/search", json={"query": "refund"}).status_code == 404

    def test_search_blank_query(self, client):
        assert client.post("/agents/a1/rag/search", json={"query": "  "}).status_code == 400

    def test_search_limit_validated(self, client):
        assert client.post("/agents/a1/rag/search", json={"query": "x", "limit": 500}).status_code == 422

    def test_stats(self, client, engine):
        from relay.common.vector_store import CollectionInfo

        engine.collection_info.return_value = CollectionInfo(exists=True, points_count=9)

        data = client.get("/agents/a1/rag/stats").json()["data"]

        assert data == {"collectionName": "agent_a1", "exists": True, "pointsCount": 9, "documentsCount": 1}

    def test_stats_store_down(self, client, engine):
        from relay.common.errors import VectorStoreUnavailableError

        engine.collection_info.side_effect = VectorStoreUnavailableError("refused")

        assert client.get("/agents/a1/rag/stats").status_code == 503

    def test_drop_collection(self, client, engine):
        engine.drop_agent.return_value = True

        data = client.delete("/agents/gone/rag").json()["data"]

        assert data == {"collectionName": "agent_gone", "dropped": True}

    def test_ingest(self, client, engine):
        from relay.retriever import IngestResult

        engine.ingest_document.return_value = IngestResult(chunks_created=1, collection_name="agent_a1")

        data = client.post("/agents/a1/context/d1/ingest").json()["data"]

        assert data["chunksCreated"] == 1
        assert data["collectionName"] == "agent_a1"
        agent_id, document = engine.ingest_document.call_args.args
        assert agent_id == "a1"
        assert document.id == "d1"

    def test_ingest_unknown_document(self, client):
        assert client.post("/agents/a1/context/nope/ingest").status_code == 404

    def test_ingest_embedding_down(self, client, engine):
        from relay.common.errors import EmbeddingUnavailableError

        engine.ingest_document.side_effect = EmbeddingUnavailableError("model offline")

        assert client.post("/agents/a1/context/d1/ingest").status_code == 503

    def test_document_status(self, client, engine):
        from relay.retriever import DocumentStatus

        engine.document_status.return_value = DocumentStatus(in_index=True, chunks_count=4)

        data = client.get("/agents/a1/context/d1/status").json()["data"]

        assert data == {"documentId": "d1", "inRAG": True, "chunksCount": 4}

    def test_delete_document(self, client, engine, registry):
        data = client.delete("/agents/a1/context/d1").json()["data"]

        assert data == {"documentId": "d1", "removed": True}
        engine.delete_document.assert_called_once_with("a1", "d1")
        assert registry.get_agent("a1").context_documents == []
