from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException

from synthesis.agent.content_schema import ContentSchema, get_content_schema
from synthesis.agent.knowledge import KnowledgeBase
from synthesis.agent.llm_client import LLMClient
from synthesis.agent.orchestrator import Identity, PipelineConfig, SynthesisPipeline
from synthesis.agent.quota import InMemoryQuotaLedger, QuotaLedger, SqlQuotaLedger
from synthesis.core.config import settings
from synthesis.core.db import engine


@lru_cache
def get_ledger() -> QuotaLedger:
    if settings.QUOTA_BACKEND == "memory":
        return InMemoryQuotaLedger()
    return SqlQuotaLedger(engine)


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    if settings.KNOWLEDGE_BASE_PATH:
        return KnowledgeBase.from_file(settings.KNOWLEDGE_BASE_PATH)
    return KnowledgeBase()


def get_schema() -> ContentSchema:
    return get_content_schema(settings.CONTENT_SCHEMA)


def get_pipeline(
    ledger: Annotated[QuotaLedger, Depends(get_ledger)],
    knowledge_base: Annotated[KnowledgeBase, Depends(get_knowledge_base)],
    schema: Annotated[ContentSchema, Depends(get_schema)],
) -> SynthesisPipeline:
    # A fresh pipeline per request; only the ledger is shared.
    return SynthesisPipeline(
        llm=LLMClient(),
        knowledge_base=knowledge_base,
        ledger=ledger,
        config=PipelineConfig.from_settings(settings),
        schema=schema,
    )


def get_identity(x_identity: Annotated[str | None, Header()] = None) -> Identity:
    if not x_identity or not x_identity.strip():
        raise HTTPException(status_code=401, detail="Missing X-Identity header")
    identity = x_identity.strip()
    return Identity(id=identity, privileged=identity in settings.PRIVILEGED_IDENTITIES)


CurrentIdentity = Annotated[Identity, Depends(get_identity)]
PipelineDep = Annotated[SynthesisPipeline, Depends(get_pipeline)]
LedgerDep = Annotated[QuotaLedger, Depends(get_ledger)]
SchemaDep = Annotated[ContentSchema, Depends(get_schema)]
