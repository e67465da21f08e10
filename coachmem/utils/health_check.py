"""
Health check utilities for the application.
"""

from typing import Any, Dict

from .bedrock_embed import BedrockEmbed
from .bedrock_llm import BedrockLLM
from .bedrock_rerank import BedrockRerank
from .config import config
from .logging_config import get_logger
from .opensearch_client import OpenSearchClient
from .supabase_client import SupabaseClient

logger = get_logger(__name__)


def check_health() -> bool:
    """Check the health of all system components.

    Returns:
        True if all components are healthy, False otherwise
    """
    try:
        health_status = get_health_status()
        all_healthy = all(status.get('healthy', False) for status in health_status.values())

        if all_healthy:
            logger.info('All system components are healthy')
        else:
            unhealthy = [name for name, status in health_status.items() if not status.get('healthy', False)]
            logger.warning(f'Unhealthy components: {", ".join(unhealthy)}')

        return all_healthy

    except Exception as e:
        logger.error(f'Health check failed: {e}')
        return False


def get_health_status() -> Dict[str, Any]:
    """Get detailed health status of all components.

    Reranking is optional: when it is disabled it is reported healthy and skipped.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    # Check Bedrock LLM
    try:
        llm = BedrockLLM(config.bedrock_llm)
        health_status['bedrock_llm'] = {
            'healthy': llm.health_check(),
            'service': 'Amazon Bedrock LLM',
            'model': config.bedrock_llm.model_id
        }
    except Exception as e:
        health_status['bedrock_llm'] = {'healthy': False, 'service': 'Amazon Bedrock LLM', 'error': str(e)}

    # Check Bedrock Embed
    try:
        embed = BedrockEmbed(config.bedrock_embed)
        health_status['bedrock_embed'] = {
            'healthy': embed.health_check(),
            'service': 'Amazon Bedrock Embed',
            'model': config.bedrock_embed.model_id
        }
    except Exception as e:
        health_status['bedrock_embed'] = {'healthy': False, 'service': 'Amazon Bedrock Embed', 'error': str(e)}

    # Check Bedrock Rerank
    if not config.bedrock_rerank.enabled:
        health_status['bedrock_rerank'] = {'healthy': True, 'service': 'Amazon Bedrock Rerank', 'enabled': False}
    else:
        try:
            rerank = BedrockRerank(config.bedrock_rerank)
            health_status['bedrock_rerank'] = {
                'healthy': rerank.health_check(),
                'service': 'Amazon Bedrock Rerank',
                'model': config.bedrock_rerank.model_id
            }
        except Exception as e:
            health_status['bedrock_rerank'] = {'healthy': False, 'service': 'Amazon Bedrock Rerank', 'error': str(e)}

    # Check OpenSearch
    try:
        opensearch = OpenSearchClient(config.opensearch)
        health_status['opensearch'] = {
            'healthy': opensearch.health_check(),
            'service': 'Amazon OpenSearch',
            'endpoint': config.opensearch.endpoint
        }
    except Exception as e:
        health_status['opensearch'] = {'healthy': False, 'service': 'Amazon OpenSearch', 'error': str(e)}

    # Check Supabase
    try:
        supabase = SupabaseClient(config.supabase)
        health_status['supabase'] = {
            'healthy': supabase.health_check(),
            'service': 'Supabase',
            'endpoint': config.supabase.url
        }
    except Exception as e:
        health_status['supabase'] = {'healthy': False, 'service': 'Supabase', 'error': str(e)}

    return health_status


def get_system_info() -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'CoachMem',
        'version': '1.0.0',
        'configuration': {
            'environment': config.environment,
            'bedrock_llm_model': config.bedrock_llm.model_id,
            'bedrock_embed_model': config.bedrock_embed.model_id,
            'rerank_enabled': config.bedrock_rerank.enabled,
            'opensearch_index': config.opensearch.index_name,
            'aws_region': config.bedrock_llm.region
        },
        'health_status': get_health_status()
    }
