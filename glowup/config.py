from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "env_prefix": "",
        "case_sensitive": False,
    }

    # Catalog
    catalog_backend: str = "memory"  # "memory", "supabase"
    catalog_seed_path: str = "data/catalog_seed.json"
    supabase_url: str = ""
    supabase_key: str = ""
    catalog_table: str = "products"
    catalog_match_rpc: str = "match_products"

    # Generative model
    anthropic_api_key: str = ""
    routine_model: str = "claude-sonnet-4-5-20250929"
    routine_max_tokens: int = 2500
    routine_temperature: float = 0.5
    routine_max_rounds: int = 6
    model_timeout_seconds: float = 60.0

    # Embeddings
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_timeout_seconds: float = 15.0

    # Search tuning (empirical, recalibrate against real catalog data)
    search_coverage_threshold: int = 6
    search_result_limit: int = 12
    semantic_similarity_floor: float = 0.3
    seed_similarity_floor: float = 0.4
    tool_similarity_floor: float = 0.25
    keyword_boost: float = 0.1
    attribute_base_score: float = 0.6
    skin_type_boost: float = 0.1
    concern_boost: float = 0.08
    rating_weight: float = 0.05
    tight_budget_penalty: float = 0.05
    backfill_similarity: float = 0.7

    # Temporal
    temporal_address: str = "localhost:7233"
    temporal_namespace: str = "default"
    temporal_api_key: str | None = None
    temporal_task_queue: str = "glowup-tasks"
    use_temporal: bool = False
    inference_timeout_seconds: int = 120

    # App
    environment: str = "development"
    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()
