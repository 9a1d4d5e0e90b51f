# ============================================================
# RELEVANCE PARSING EXCEPTIONS
# ============================================================

class RelevanceParseError(Exception):
    """The relevance model answered with something we could not use"""
    pass


class JSONExtractionError(RelevanceParseError):
    """Could not extract JSON from LLM response"""
    pass
