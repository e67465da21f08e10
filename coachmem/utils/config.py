"""
Configuration management for AWS services, the team data store and engine tuning.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockLLMConfig:
    """Configuration for Amazon Bedrock LLM service."""
    region: str
    model_id: str
    max_tokens: int
    temperature: float
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class BedrockRerankConfig:
    """Configuration for Amazon Bedrock Rerank service."""
    enabled: bool
    region: str
    model_id: str
    retry_attempts: int
    retry_delay: float


@dataclass
class OpenSearchConfig:
    """Configuration for OpenSearch."""
    endpoint: str
    port: int
    region: str
    index_name: str
    dimension: int


@dataclass
class SupabaseConfig:
    """Configuration for the Supabase team data store."""
    url: str
    service_role_key: str
    people_table: str
    messages_table: str
    patterns_table: str


@dataclass
class CacheConfig:
    """TTLs (seconds) and bounds for the per-process context cache."""
    people_ttl: float
    themes_ttl: float
    challenges_ttl: float
    patterns_ttl: float
    semantic_ttl: float
    validation_ttl: float
    max_entries: int
    sweep_interval: float


@dataclass
class ContextConfig:
    """Time windows (days) used by the team aggregator."""
    themes_window_days: int
    challenges_window_days: int
    patterns_window_days: int
    person_themes_window_days: int
    max_themes: int
    max_examples: int
    max_person_themes: int


@dataclass
class SearchConfig:
    """Semantic search tuning."""
    min_query_length: int
    person_threshold: float
    person_limit: int
    team_threshold: float
    team_limit: int
    max_results: int
    annotate_top_k: int
    connected_top_k: int
    connected_window_days: int
    connected_limit: int
    min_results_for_patterns: int


@dataclass
class DetectionConfig:
    """Person mention detection tuning."""
    confidence_floor: float
    min_validation_score: int
    validation_weight: float
    context_boost: float
    min_name_length: int
    max_name_length: int


@dataclass
class LearningConfig:
    """Recurring pattern learning tuning."""
    min_conversation_length: int
    min_description_length: int
    merge_threshold: float
    confidence_step: float
    min_insight_frequency: int
    max_insight_patterns: int


@dataclass
class InsightsConfig:
    """Proactive insight tuning."""
    inactivity_days: int
    follow_up_window_days: int
    max_starters: int
    max_follow_ups: int
    max_alerts: int
    min_team_size: int
    max_insights: int


@dataclass
class BackgroundConfig:
    """Background task queue and embedding backfill."""
    workers: int
    queue_size: int
    batch_size: int
    batch_delay: float
    backfill_limit: int


@dataclass
class TimeoutConfig:
    """Per-call timeouts (seconds) for external collaborators."""
    data_store: float
    vector_search: float
    completion: float


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_llm: BedrockLLMConfig
    bedrock_embed: BedrockEmbedConfig
    bedrock_rerank: BedrockRerankConfig
    opensearch: OpenSearchConfig
    supabase: SupabaseConfig
    cache: CacheConfig
    context: ContextConfig
    search: SearchConfig
    detection: DetectionConfig
    learning: LearningConfig
    insights: InsightsConfig
    background: BackgroundConfig
    timeouts: TimeoutConfig
    mcp: MCPConfig


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock configuration
    bedrock_llm_config = BedrockLLMConfig(region=os.getenv('BEDROCK_LLM_AWS_REGION', 'us-east-1'),
                                          model_id=os.getenv('BEDROCK_LLM_MODEL_ID', 'anthropic.claude-3-sonnet-20240229-v1:0'),
                                          max_tokens=int(os.getenv('BEDROCK_LLM_MAX_TOKENS', '1024')),
                                          temperature=float(os.getenv('BEDROCK_LLM_TEMPERATURE', '0.0')),
                                          retry_attempts=int(os.getenv('BEDROCK_LLM_RETRY_ATTEMPTS', '2')),
                                          retry_delay=float(os.getenv('BEDROCK_LLM_RETRY_DELAY', '0.5')))

    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    bedrock_rerank_config = BedrockRerankConfig(enabled=_env_bool('BEDROCK_RERANK_ENABLED', 'true'),
                                                region=os.getenv('BEDROCK_RERANK_AWS_REGION', 'us-west-2'),
                                                model_id=os.getenv('BEDROCK_RERANK_MODEL_ID', 'amazon.rerank-v1:0'),
                                                retry_attempts=int(os.getenv('BEDROCK_RERANK_RETRY_ATTEMPTS', '2')),
                                                retry_delay=float(os.getenv('BEDROCK_RERANK_RETRY_DELAY', '1.0')))

    # Vector search configuration
    opensearch_config = OpenSearchConfig(endpoint=os.getenv('OPENSEARCH_ENDPOINT', 'localhost'),
                                         port=int(os.getenv('OPENSEARCH_PORT', '443')),
                                         region=os.getenv('OPENSEARCH_AWS_REGION', 'us-east-1'),
                                         index_name=os.getenv('OPENSEARCH_INDEX', 'conversation_embeddings'),
                                         dimension=int(os.getenv('OPENSEARCH_DIMENSION', '1024')))

    # Team data store configuration
    supabase_config = SupabaseConfig(url=os.getenv('SUPABASE_URL', 'http://localhost:54321'),
                                     service_role_key=os.getenv('SUPABASE_SERVICE_ROLE_KEY', ''),
                                     people_table=os.getenv('SUPABASE_PEOPLE_TABLE', 'people'),
                                     messages_table=os.getenv('SUPABASE_MESSAGES_TABLE', 'messages'),
                                     patterns_table=os.getenv('SUPABASE_PATTERNS_TABLE', 'recurring_patterns'))

    cache_config = CacheConfig(people_ttl=float(os.getenv('CACHE_PEOPLE_TTL', '300')),
                               themes_ttl=float(os.getenv('CACHE_THEMES_TTL', '180')),
                               challenges_ttl=float(os.getenv('CACHE_CHALLENGES_TTL', '180')),
                               patterns_ttl=float(os.getenv('CACHE_PATTERNS_TTL', '240')),
                               semantic_ttl=float(os.getenv('CACHE_SEMANTIC_TTL', '30')),
                               validation_ttl=float(os.getenv('CACHE_VALIDATION_TTL', '600')),
                               max_entries=int(os.getenv('CACHE_MAX_ENTRIES', '5000')),
                               sweep_interval=float(os.getenv('CACHE_SWEEP_INTERVAL', '60')))

    context_config = ContextConfig(themes_window_days=int(os.getenv('CONTEXT_THEMES_WINDOW_DAYS', '30')),
                                   challenges_window_days=int(os.getenv('CONTEXT_CHALLENGES_WINDOW_DAYS', '7')),
                                   patterns_window_days=int(os.getenv('CONTEXT_PATTERNS_WINDOW_DAYS', '14')),
                                   person_themes_window_days=int(os.getenv('CONTEXT_PERSON_THEMES_WINDOW_DAYS', '14')),
                                   max_themes=int(os.getenv('CONTEXT_MAX_THEMES', '5')),
                                   max_examples=int(os.getenv('CONTEXT_MAX_EXAMPLES', '3')),
                                   max_person_themes=int(os.getenv('CONTEXT_MAX_PERSON_THEMES', '3')))

    search_config = SearchConfig(min_query_length=int(os.getenv('SEARCH_MIN_QUERY_LENGTH', '10')),
                                 person_threshold=float(os.getenv('SEARCH_PERSON_THRESHOLD', '0.70')),
                                 person_limit=int(os.getenv('SEARCH_PERSON_LIMIT', '20')),
                                 team_threshold=float(os.getenv('SEARCH_TEAM_THRESHOLD', '0.75')),
                                 team_limit=int(os.getenv('SEARCH_TEAM_LIMIT', '30')),
                                 max_results=int(os.getenv('SEARCH_MAX_RESULTS', '10')),
                                 annotate_top_k=int(os.getenv('SEARCH_ANNOTATE_TOP_K', '10')),
                                 connected_top_k=int(os.getenv('SEARCH_CONNECTED_TOP_K', '5')),
                                 connected_window_days=int(os.getenv('SEARCH_CONNECTED_WINDOW_DAYS', '3')),
                                 connected_limit=int(os.getenv('SEARCH_CONNECTED_LIMIT', '5')),
                                 min_results_for_patterns=int(os.getenv('SEARCH_MIN_RESULTS_FOR_PATTERNS', '3')))

    detection_config = DetectionConfig(confidence_floor=float(os.getenv('DETECTION_CONFIDENCE_FLOOR', '0.6')),
                                       min_validation_score=int(os.getenv('DETECTION_MIN_VALIDATION_SCORE', '6')),
                                       validation_weight=float(os.getenv('DETECTION_VALIDATION_WEIGHT', '0.3')),
                                       context_boost=float(os.getenv('DETECTION_CONTEXT_BOOST', '0.1')),
                                       min_name_length=int(os.getenv('DETECTION_MIN_NAME_LENGTH', '2')),
                                       max_name_length=int(os.getenv('DETECTION_MAX_NAME_LENGTH', '30')))

    learning_config = LearningConfig(min_conversation_length=int(os.getenv('LEARNING_MIN_CONVERSATION_LENGTH', '4')),
                                     min_description_length=int(os.getenv('LEARNING_MIN_DESCRIPTION_LENGTH', '5')),
                                     merge_threshold=float(os.getenv('LEARNING_MERGE_THRESHOLD', '0.6')),
                                     confidence_step=float(os.getenv('LEARNING_CONFIDENCE_STEP', '0.1')),
                                     min_insight_frequency=int(os.getenv('LEARNING_MIN_INSIGHT_FREQUENCY', '2')),
                                     max_insight_patterns=int(os.getenv('LEARNING_MAX_INSIGHT_PATTERNS', '10')))

    insights_config = InsightsConfig(inactivity_days=int(os.getenv('INSIGHTS_INACTIVITY_DAYS', '7')),
                                     follow_up_window_days=int(os.getenv('INSIGHTS_FOLLOW_UP_WINDOW_DAYS', '3')),
                                     max_starters=int(os.getenv('INSIGHTS_MAX_STARTERS', '3')),
                                     max_follow_ups=int(os.getenv('INSIGHTS_MAX_FOLLOW_UPS', '3')),
                                     max_alerts=int(os.getenv('INSIGHTS_MAX_ALERTS', '3')),
                                     min_team_size=int(os.getenv('INSIGHTS_MIN_TEAM_SIZE', '2')),
                                     max_insights=int(os.getenv('INSIGHTS_MAX_INSIGHTS', '10')))

    background_config = BackgroundConfig(workers=int(os.getenv('BACKGROUND_WORKERS', '2')),
                                         queue_size=int(os.getenv('BACKGROUND_QUEUE_SIZE', '100')),
                                         batch_size=int(os.getenv('EMBEDDING_BATCH_SIZE', '5')),
                                         batch_delay=float(os.getenv('EMBEDDING_BATCH_DELAY', '1.0')),
                                         backfill_limit=int(os.getenv('EMBEDDING_BACKFILL_LIMIT', '50')))

    timeout_config = TimeoutConfig(data_store=float(os.getenv('TIMEOUT_DATA_STORE', '10')),
                                   vector_search=float(os.getenv('TIMEOUT_VECTOR_SEARCH', '10')),
                                   completion=float(os.getenv('TIMEOUT_COMPLETION', '30')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_llm=bedrock_llm_config,
                     bedrock_embed=bedrock_embed_config,
                     bedrock_rerank=bedrock_rerank_config,
                     opensearch=opensearch_config,
                     supabase=supabase_config,
                     cache=cache_config,
                     context=context_config,
                     search=search_config,
                     detection=detection_config,
                     learning=learning_config,
                     insights=insights_config,
                     background=background_config,
                     timeouts=timeout_config,
                     mcp=mcp_config)


# Global configuration instance
config = load_config()
