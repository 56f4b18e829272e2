"""
Scholar - Service Wiring
=========================
Builds the concrete collaborators from ``settings`` and hands them to the
pipelines.  Nothing else in the package constructs clients; every
component takes its dependencies through ``__init__``.

Usage:
    services = build_services()
    outcome  = await services.ingestion.trigger(path, "application/pdf")
    result   = await services.rag.answer_query("user_123", "…", "all")
    services.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from motor.motor_asyncio import AsyncIOMotorClient

from scholar.config.settings import settings
from scholar.src.core.embeddings import EmbeddingGateway
from scholar.src.core.generator import AnswerGenerator
from scholar.src.core.ingestor import IngestionPipeline
from scholar.src.core.insights import InsightService
from scholar.src.core.papers import PaperService
from scholar.src.core.rag_engine import RAGManager
from scholar.src.database.blob_store import LocalBlobStore
from scholar.src.database.document_store import MongoDocumentStore
from scholar.src.database.vector_store import LanceRetrievalGateway
from scholar.src.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    ingestion: IngestionPipeline
    rag: RAGManager
    papers: PaperService
    insights: InsightService
    retrieval: LanceRetrievalGateway
    blobs: LocalBlobStore
    mongo_client: AsyncIOMotorClient

    def close(self) -> None:
        self.mongo_client.close()


def build_embedder() -> GoogleGenerativeAIEmbeddings:
    return GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())


def build_chat_model() -> ChatGoogleGenerativeAI:
    """Initialise the Gemini LLM via LangChain."""
    llm = ChatGoogleGenerativeAI(model=settings.LLM_MODEL, temperature=settings.LLM_TEMPERATURE, max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS, top_p=settings.LLM_TOP_P, top_k=settings.LLM_TOP_K, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())
    logger.info("LLM initialised: %s (temperature=%.1f)", settings.LLM_MODEL, settings.LLM_TEMPERATURE)
    return llm


def build_services() -> Services:
    timeout = settings.UPSTREAM_TIMEOUT_SECONDS

    mongo_client = AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
    documents = MongoDocumentStore(mongo_client[settings.MONGO_DB_NAME])
    blobs = LocalBlobStore()
    retrieval = LanceRetrievalGateway(timeout=timeout)

    embeddings = EmbeddingGateway(build_embedder(), timeout=timeout)
    generator = AnswerGenerator(build_chat_model(), timeout=timeout)

    return Services(
        ingestion=IngestionPipeline(documents, blobs, embeddings, retrieval),
        rag=RAGManager(documents, embeddings, retrieval, generator),
        papers=PaperService(documents, blobs),
        insights=InsightService(documents),
        retrieval=retrieval,
        blobs=blobs,
        mongo_client=mongo_client,
    )
