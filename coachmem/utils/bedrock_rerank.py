"""
Amazon Bedrock Rerank client used as the batch relevance pass over vector hits.
"""

import json
import random
import time
from typing import Dict, List

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockRerankConfig
from .logging_config import get_logger

logger = get_logger(__name__)

RERANK_REGIONS = ('us-west-2', 'ap-northeast-1', 'ca-central-1', 'eu-central-1')


class BedrockRerankError(Exception):
    """Custom exception for Bedrock Rerank errors."""
    pass


class BedrockRerank:
    """Amazon Bedrock Rerank client with error handling and retry logic."""

    def __init__(self, config: BedrockRerankConfig):
        """
        Initialize Bedrock Rerank client.

        Args:
            config: BedrockRerankConfig instance with connection parameters

        Raises:
            BedrockRerankError: If the configured region has no rerank models
        """
        self.config = config
        self.model_id = config.model_id
        if config.region not in RERANK_REGIONS:
            raise BedrockRerankError(f'Bedrock Rerank is not available in region {config.region}')

        self.bedrock_runtime = boto3.client('bedrock-runtime', region_name=config.region)
        logger.info(f'Initialized Bedrock Rerank client in region: {config.region}, with model: {config.model_id}')

    def rerank(self, query: str, snippets: List[str]) -> Dict[int, float]:
        """
        Score each snippet's relevance to the query.

        Args:
            query: Search query string
            snippets: Conversation snippets, in vector-search order

        Returns:
            Mapping of snippet index to relevance score in [0, 1]

        Raises:
            BedrockRerankError: If reranking fails
        """
        if not query or not query.strip() or not snippets:
            return {}

        data = {'query': query.strip(), 'documents': snippets, 'top_n': len(snippets)}
        if 'cohere' in self.model_id.lower():
            data['api_version'] = 2
        body = json.dumps(data)

        logger.debug(f'Reranking {len(snippets)} snippets for query: {query[:50]}...')

        for attempt in range(self.config.retry_attempts):
            try:
                response = self.bedrock_runtime.invoke_model(modelId=self.model_id,
                                                             accept='application/json',
                                                             contentType='application/json',
                                                             body=body)
                response_body = json.loads(response.get('body').read())

                if 'results' not in response_body:
                    logger.error('Invalid response format from Bedrock rerank')
                    raise BedrockRerankError('Invalid response format')

                scores = {}
                for res in response_body['results']:
                    index = res.get('index')
                    if isinstance(index, int) and 0 <= index < len(snippets):
                        scores[index] = max(0.0, min(float(res.get('relevance_score', 0.0)), 1.0))
                logger.debug(f'Reranking returned {len(scores)} scores')
                return scores

            except (ClientError, BotoCoreError, json.JSONDecodeError) as e:
                logger.warning(f'Bedrock Rerank attempt {attempt + 1}/{self.config.retry_attempts} failed: {e}')

                if attempt < self.config.retry_attempts - 1:
                    # Exponential backoff with jitter
                    delay = self.config.retry_delay * (2**attempt) + random.uniform(0, 1)
                    time.sleep(delay)
                else:
                    raise BedrockRerankError(f'Bedrock Rerank failed after {self.config.retry_attempts} attempts: {e}')
            except BedrockRerankError:
                raise
            except Exception as e:
                logger.error(f'Unexpected error during reranking: {e}')
                raise BedrockRerankError(f'Unexpected reranking error: {e}')
        raise BedrockRerankError(f'Bedrock Rerank failed after {self.config.retry_attempts} attempts')

    def health_check(self) -> bool:
        """
        Perform a health check on the Bedrock Rerank service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            return len(self.rerank('weekly one-on-one', ['We moved our 1:1 to Fridays', 'Budget review'])) > 0

        except Exception as e:
            logger.error(f'Bedrock Rerank health check failed: {e}')
            return False
