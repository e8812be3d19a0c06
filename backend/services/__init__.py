"""
Parley Services - Shared infrastructure services.

- llm_client: Async OpenAI-compatible streaming client
- model_registry: Model ids, providers and capability flags
- auth: JWT bearer token verification
- database: PostgreSQL connection manager (asyncpg)
- session_store: PostgreSQL and in-memory session stores
- redis_client: Redis connection manager with in-memory fallback
- session_cache: Read-through cache for session listings
"""
