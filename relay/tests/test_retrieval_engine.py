"""
Tests for Retrieval Engine and Query Processor

Embedding and vector store are replaced by in-memory fakes.
"""

import logging
import pytest
from unittest.mock import MagicMock


class FakeEmbedding:
    """Four-dimensional embeddings keyed on a few words"""

    model_name = "fake-model"
    dimension = 4
    is_loaded = True

    def __init__(self):
        self.embedded = []
        self.queries = []
        self.fail = False

    def _vector(self, text):
        t = text.lower()
        return [
            1.0 if "price" in t or "pricing" in t else 0.0,
            1.0 if "refund" in t else 0.0,
            1.0 if "shipping" in t else 0.0,
            0.1,
        ]

    def embed(self, texts):
        from relay.common.errors import EmbeddingUnavailableError

        if self.fail:
            raise EmbeddingUnavailableError("model offline")
        self.embedded.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_single(self, text):
        self.queries.append(text)
        return self.embed([text])[0]


class FakeStore:
    """Dict-backed stand-in for VectorStoreClient"""

    url = "http://qdrant:6333"

    def __init__(self):
        self.collections = {}
        self.calls = []

    def ensure_collection(self, agent_id, vector_size, distance="Cosine"):
        self.calls.append(("ensure_collection", agent_id, vector_size, distance))
        if agent_id in self.collections:
            return False
        self.collections[agent_id] = {}
        return True

    def delete_by_document(self, agent_id, document_id):
        self.calls.append(("delete_by_document", agent_id, document_id))
        points = self.collections.get(agent_id, {})
        for pid in [pid for pid, p in points.items() if p.payload["documentId"] == document_id]:
            del points[pid]

    def upsert_many(self, agent_id, points):
        self.calls.append(("upsert_many", agent_id, len(points)))
        for point in points:
            self.collections[agent_id][point.id] = point

    def search(self, agent_id, vector, limit=5, score_threshold=None, filters=None):
        from relay.common.vector_store import VectorHit

        hits = []
        for point in self.collections.get(agent_id, {}).values():
            if filters and any(point.payload.get(k) != v for k, v in filters.items()):
                continue
            score = sum(a * b for a, b in zip(vector, point.vector))
            hits.append(VectorHit(id=point.id, score=score, payload=point.payload))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]

    def count_by_document(self, agent_id, document_id):
        return sum(
            1 for p in self.collections.get(agent_id, {}).values()
            if p.payload["documentId"] == document_id
        )

    def collection_info(self, agent_id):
        from relay.common.vector_store import CollectionInfo

        if agent_id not in self.collections:
            return CollectionInfo(exists=False)
        return CollectionInfo(exists=True, points_count=len(self.collections[agent_id]))

    def delete_collection(self, agent_id):
        return self.collections.pop(agent_id, None) is not None

    def health(self):
        from relay.common.vector_store import HealthStatus

        return HealthStatus(connected=True)


@pytest.fixture
def embedding():
    return FakeEmbedding()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def engine(embedding, store):
    from relay.common.chunker import TextChunker
    from relay.retriever import RetrievalEngine

    return RetrievalEngine(
        embedding,
        store,
        chunker=TextChunker(chunk_size=40, overlap=5, min_chunk_size=5),
        batch_size=2,
    )


PRICING = (
    "Our pricing starts at ten dollars a month. The price includes support. "
    "Annual plans get two months free of charge."
)


class TestIngest:
    """Tests for RetrievalEngine.ingest"""

    def test_stores_chunks_with_payload(self, engine, store):
        from relay.retriever import chunk_point_id

        result = engine.ingest("a1", "doc-1", PRICING, document_type="file", title="Pricing", source="pricing.pdf")

        assert result.collection_name == "agent_a1"
        assert result.chunks_created == store.count_by_document("a1", "doc-1")
        assert result.chunks_created > 1
        assert result.language == "english"

        first = store.collections["a1"][chunk_point_id("doc-1", 0)]
        assert first.payload["text"] == PRICING[:40]
        assert first.payload["agentId"] == "a1"
        assert first.payload["documentId"] == "doc-1"
        assert first.payload["type"] == "file"
        assert first.payload["title"] == "Pricing"
        assert first.payload["chunkIndex"] == 0
        assert first.payload["source"] == "pricing.pdf"
        assert first.payload["originalId"] == "doc-1_chunk_0"

    def test_collection_created_with_model_dimension(self, engine, store):
        engine.ingest("a1", "doc-1", PRICING)

        assert ("ensure_collection", "a1", 4, "Cosine") in store.calls

    def test_old_chunks_deleted_before_upsert(self, engine, store):
        engine.ingest("a1", "doc-1", PRICING)

        names = [c[0] for c in store.calls]
        assert names.index("delete_by_document") < names.index("upsert_many")

    def test_upserts_in_batches(self, engine, store):
        result = engine.ingest("a1", "doc-1", PRICING)

        sizes = [c[2] for c in store.calls if c[0] == "upsert_many"]
        assert sum(sizes) == result.chunks_created
        assert max(sizes) <= 2

    def test_reingest_replaces_previous_chunks(self, engine, store):
        engine.ingest("a1", "doc-1", PRICING)
        engine.ingest("a1", "doc-1", "Refunds take five days.")

        assert store.count_by_document("a1", "doc-1") == 1
        texts = [p.payload["text"] for p in store.collections["a1"].values()]
        assert texts == ["Refunds take five days."]

    def test_other_documents_untouched(self, engine, store):
        engine.ingest("a1", "doc-1", PRICING)
        before = store.count_by_document("a1", "doc-1")

        engine.ingest("a1", "doc-2", "Shipping is free over fifty dollars.")

        assert store.count_by_document("a1", "doc-1") == before

    def test_point_ids_are_deterministic(self):
        from relay.retriever import chunk_point_id

        assert chunk_point_id("doc-1", 3) == chunk_point_id("doc-1", 3)
        assert chunk_point_id("doc-1", 3) != chunk_point_id("doc-1", 4)
        assert chunk_point_id("doc-1", 0) != chunk_point_id("doc-2", 0)

    def test_embedding_failure_keeps_old_chunks(self, engine, embedding, store):
        from relay.common.errors import EmbeddingUnavailableError

        engine.ingest("a1", "doc-1", PRICING)
        before = store.count_by_document("a1", "doc-1")
        embedding.fail = True

        with pytest.raises(EmbeddingUnavailableError):
            engine.ingest("a1", "doc-1", "Completely new content for the document.")

        assert store.count_by_document("a1", "doc-1") == before

    def test_empty_document_clears_chunks(self, engine, store):
        engine.ingest("a1", "doc-1", PRICING)

        result = engine.ingest("a1", "doc-1", "   ")

        assert result.chunks_created == 0
        assert store.count_by_document("a1", "doc-1") == 0

    def test_unknown_document_type(self, engine):
        with pytest.raises(ValueError):
            engine.ingest("a1", "doc-1", PRICING, document_type="spreadsheet")

    def test_website_chunks_carry_page_url(self, engine, store):
        content = (
            "=== WEBSITE CONTENT ===\n"
            "--- Page 1: Home ---\n"
            "URL: https://shop.example.com\n"
            "Welcome to the shop.\n"
            "--- Page 2: Shipping ---\n"
            "URL: https://shop.example.com/shipping\n"
            "Shipping takes three days.\n"
        )

        result = engine.ingest("a1", "site", content, document_type="website", source="https://shop.example.com")

        assert result.chunks_created == 2
        sources = sorted(p.payload["source"] for p in store.collections["a1"].values())
        assert sources == ["https://shop.example.com", "https://shop.example.com/shipping"]

    def test_language_tag(self, embedding, store):
        from relay.common.language import LanguageInfo
        from relay.retriever import RetrievalEngine

        detector = MagicMock(return_value=LanguageInfo(family="romance", script="Latin", confidence=0.7))
        engine = RetrievalEngine(embedding, store, language_detector=detector)

        result = engine.ingest("a1", "doc-1", "Nuestros precios empiezan en diez dólares.")

        assert result.language == "romance"
        assert all(p.payload["language"] == "romance" for p in store.collections["a1"].values())

    def test_ingest_document(self, engine, store):
        from relay.common.schemas import ContextDocument

        document = ContextDocument(id="doc-9", type="url", title="FAQ", content=PRICING, url="https://x.io/faq")

        result = engine.ingest_document("a1", document)

        assert result.chunks_created > 0
        point = next(iter(store.collections["a1"].values()))
        assert point.payload["type"] == "url"
        assert point.payload["source"] == "https://x.io/faq"


class TestSearch:
    """Tests for RetrievalEngine.search and retrieve"""

    def test_finds_relevant_chunks(self, engine):
        engine.ingest("a1", "pricing", "Pricing: ten dollars per month.")
        engine.ingest("a1", "refunds", "Refund requests take five days.")

        texts = engine.retrieve("a1", "What is the price?")

        assert texts[0] == "Pricing: ten dollars per month."

    def test_scores_descending_and_above_threshold(self, engine):
        engine.ingest("a1", "pricing", "Pricing: ten dollars per month.")
        engine.ingest("a1", "refunds", "Refund requests take five days.")
        engine.ingest("a1", "shipping", "Shipping is free.")

        chunks = engine.search("a1", "price refund", limit=5, score_threshold=0.5)

        scores = [c.score for c in chunks]
        assert scores == sorted(scores, reverse=True)
        assert all(s >= 0.5 for s in scores)
        assert {c.document_id for c in chunks} == {"pricing", "refunds"}

    def test_respects_limit(self, engine):
        for i in range(6):
            engine.ingest("a1", f"doc-{i}", f"Pricing tier number {i}.")

        assert len(engine.search("a1", "pricing", limit=3)) == 3

    def test_agents_are_isolated(self, engine):
        engine.ingest("a1", "doc-1", "Pricing for agent one.")

        assert engine.retrieve("a2", "pricing") == []

    def test_blank_query(self, engine, embedding):
        assert engine.search("a1", "   ") == []
        assert embedding.queries == []

    def test_query_is_cleaned_before_embedding(self, engine, embedding):
        engine.search("a1", "What is the price of the plan?")

        assert embedding.queries == ["price plan?"]

    def test_limit_is_clamped(self, embedding):
        from relay.retriever import RetrievalEngine

        store = MagicMock()
        store.search.return_value = []
        engine = RetrievalEngine(embedding, store)

        engine.search("a1", "pricing", limit=1000)
        assert store.search.call_args.kwargs["limit"] == 100

        engine.search("a1", "pricing", limit=0)
        assert store.search.call_args.kwargs["limit"] == 1

    def test_filters_passed_through(self, engine):
        engine.ingest("a1", "doc-1", "Pricing in the file.", document_type="file")
        engine.ingest("a1", "doc-2", "Pricing on the page.", document_type="url")

        chunks = engine.search("a1", "pricing", filters={"type": "url"})

        assert [c.document_id for c in chunks] == ["doc-2"]

    def test_store_down_degrades_to_empty(self, embedding, caplog):
        from relay.common.errors import VectorStoreUnavailableError
        from relay.retriever import RetrievalEngine

        store = MagicMock()
        store.search.side_effect = VectorStoreUnavailableError("connection refused")
        engine = RetrievalEngine(embedding, store)

        with caplog.at_level(logging.WARNING, logger="relay.retriever.engine"):
            assert engine.retrieve("a1", "pricing") == []

        assert "degraded" in caplog.text

    def test_embedding_down_degrades_to_empty(self, engine, embedding):
        embedding.fail = True

        assert engine.retrieve("a1", "pricing") == []

    def test_to_dict(self):
        from relay.retriever import RetrievedChunk

        chunk = RetrievedChunk(text="t", score=0.8, document_id="d", chunk_index=2, document_type="file", title="T")

        data = chunk.to_dict()

        assert data["metadata"]["documentId"] == "d"
        assert data["metadata"]["chunkIndex"] == 2
        assert data["metadata"]["documentTitle"] == "T"

    def test_build_context(self):
        from relay.retriever import RetrievalEngine

        assert RetrievalEngine.build_context(["a", "", "b"]) == "a\n\nb"


class TestMaintenance:
    def test_document_status(self, engine):
        engine.ingest("a1", "doc-1", PRICING)

        status = engine.document_status("a1", "doc-1")

        assert status.in_index
        assert status.chunks_count > 0
        assert not engine.document_status("a1", "other").in_index

    def test_delete_document(self, engine):
        engine.ingest("a1", "doc-1", PRICING)

        engine.delete_document("a1", "doc-1")

        assert engine.document_status("a1", "doc-1").chunks_count == 0

    def test_drop_agent(self, engine):
        engine.ingest("a1", "doc-1", PRICING)

        assert engine.drop_agent("a1") is True
        assert not engine.collection_info("a1").exists
        assert engine.drop_agent("a1") is False

    def test_health(self, engine):
        health = engine.health().to_dict()

        assert health["qdrant"] == {"connected": True, "url": "http://qdrant:6333"}
        assert health["embeddings"] == {"modelLoaded": True, "modelName": "fake-model"}


class TestQueryProcessor:
    """Tests for QueryProcessor"""

    def test_strips_stop_words_and_short_words(self):
        from relay.retriever import QueryProcessor

        parsed = QueryProcessor().parse("How do I get a refund for my order?")

        assert parsed.keywords == ["get", "refund", "order?"]
        assert parsed.cleaned == "get refund order?"

    def test_falls_back_to_original(self):
        from relay.retriever import QueryProcessor

        assert QueryProcessor().clean("is it ok?") == "is it ok?"
