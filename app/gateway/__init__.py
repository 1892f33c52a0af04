"""AI Gateway Layer.

Mediates every call to the text-generation backends with:
  - Provider selection with fallback (OpenAI / Claude)
  - Per-user, per-endpoint rate limiting persisted in the database
  - Retry with linear backoff for transient provider failures
  - Description-hash keyed caching of summaries and suggestions
  - A closed error taxonomy for the API layer
"""
