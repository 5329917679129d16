from docchat.services.retrieval.retriever import HybridRetriever, extract_query_keywords

__all__ = ["HybridRetriever", "extract_query_keywords"]
