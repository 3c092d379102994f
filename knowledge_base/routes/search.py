"""
Search API routes.
Semantic search over the caller's knowledge base.
"""
from fastapi import APIRouter, Depends

from ..auth import OwnerScope, get_owner_scope
from ..dependencies import get_retrieval_engine
from ..schemas import SearchBody, SearchResponseOut
from ..services.retrieval_service import RetrievalEngine

router = APIRouter(prefix="/api", tags=["search"])


@router.post("/documents/search", response_model=SearchResponseOut)
def search_documents(
    payload: SearchBody,
    scope: OwnerScope = Depends(get_owner_scope),
    engine: RetrievalEngine = Depends(get_retrieval_engine),
):
    """
    Return the chunks most similar to a query, plus a context block
    ready to drop into an LLM prompt.

    Example response:
    {
        "results": [{"document_name": "Handbook", "chunk_index": 3, "similarity": 0.82, ...}],
        "context": "## Relevant Information from Documents\\n\\n### [1] From \\"Handbook\\" ...",
        "count": 1
    }
    """
    return engine.search(payload.query, scope, limit=payload.limit, threshold=payload.threshold)
