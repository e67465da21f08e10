"""
OpenSearch client wrapper for conversation message embeddings and k-NN search.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import OpenSearchException
from requests_aws4auth import AWS4Auth

from .config import OpenSearchConfig
from .logging_config import get_logger
from .timestamp_utils import to_iso

logger = get_logger(__name__)


class OpenSearchError(Exception):
    """Custom exception for OpenSearch errors."""
    pass


def score_to_similarity(score: float) -> float:
    """Convert a cosinesimil k-NN score back to cosine similarity.

    The nmslib engine reports score = 1 / (2 - cosine) for the cosinesimil space.
    """
    if score <= 0:
        return 0.0
    return max(0.0, min(2.0 - 1.0 / score, 1.0))


class OpenSearchClient:
    """OpenSearch client with AWS authentication and error handling."""

    def __init__(self, config: OpenSearchConfig):
        """
        Initialize OpenSearch client.

        Args:
            config: OpenSearchConfig instance with connection parameters
        """
        self.config = config
        self.index_name = config.index_name

        # Get AWS credentials and create auth
        credentials = boto3.Session().get_credentials()
        auth = AWS4Auth(region=config.region, service='aoss', refreshable_credentials=credentials)
        endpoint = config.endpoint
        if '://' in endpoint:
            # Remove protocol if present
            endpoint = endpoint.split('://', 1)[1]

        self.client = OpenSearch(hosts=[{
            'host': endpoint,
            'port': config.port
        }],
                                 http_auth=auth,
                                 use_ssl=True,
                                 verify_certs=True,
                                 connection_class=RequestsHttpConnection)

        logger.info(f'Initialized OpenSearch client for endpoint: {config.endpoint}')

    def create_index_if_not_exists(self) -> str:
        """
        Create the message embedding index if it doesn't exist.

        Returns:
            'exists', 'created' or 'failed'

        Raises:
            OpenSearchError: If index creation fails
        """
        try:
            if self.client.indices.exists(index=self.index_name):
                logger.debug(f'Index {self.index_name} already exists')
                return 'exists'

            index_body = {
                'mappings': {
                    'properties': {
                        'message_id': {
                            'type': 'keyword'
                        },
                        'user_id': {
                            'type': 'keyword'
                        },
                        'person_id': {
                            'type': 'keyword'
                        },
                        'topic_id': {
                            'type': 'keyword'
                        },
                        'message_type': {
                            'type': 'keyword'
                        },
                        'content': {
                            'type': 'text'
                        },
                        'embedding': {
                            'type': 'knn_vector',
                            'dimension': self.config.dimension,
                            'method': {
                                'name': 'hnsw',
                                'space_type': 'cosinesimil',
                                'engine': 'nmslib'
                            }
                        },
                        'created_at': {
                            'type': 'date'
                        },
                        'metadata': {
                            'type': 'object',
                            'enabled': False
                        }
                    }
                },
                'settings': {
                    'index': {
                        'knn': True,
                        'knn.algo_param.ef_search': 100
                    }
                }
            }

            response = self.client.indices.create(index=self.index_name, body=index_body)
            logger.info(f'Created index {self.index_name}')
            if response.get('acknowledged', False):
                logger.info(f'Waiting 15s for index {self.index_name} sync-up...')
                time.sleep(15)
                return 'created'
            return 'failed'
        except OpenSearchException as e:
            logger.error(f'Error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Failed to create index: {e}')
        except Exception as e:
            logger.error(f'Unexpected error creating index {self.index_name}: {e}')
            raise OpenSearchError(f'Unexpected error creating index: {e}')

    def index_message(self, document: Dict[str, Any]) -> bool:
        """
        Index one message embedding document.

        The message id is used as the document id, so re-indexing a message
        overwrites the previous embedding.

        Returns:
            True if indexing was successful, False otherwise

        Raises:
            OpenSearchError: If indexing fails
        """
        try:
            response = self.client.index(index=self.index_name, id=document['message_id'], body=document)

            success = response.get('result') in ['created', 'updated']
            if success:
                logger.debug(f"Indexed message {document['message_id']} in {self.index_name}")
            else:
                logger.warning(f'Unexpected result indexing message: {response}')

            return success

        except OpenSearchException as e:
            logger.error(f'Error indexing message: {e}')
            raise OpenSearchError(f'Failed to index message: {e}')
        except Exception as e:
            logger.error(f'Unexpected error indexing message: {e}')
            raise OpenSearchError(f'Unexpected error indexing message: {e}')

    def _run_search(self, search_body: Dict[str, Any], action: str) -> List[Dict[str, Any]]:
        try:
            response = self.client.search(index=self.index_name, body=search_body)
        except OpenSearchException as e:
            logger.error(f'Error performing {action}: {e}')
            raise OpenSearchError(f'{action} failed: {e}')
        except Exception as e:
            logger.error(f'Unexpected error in {action}: {e}')
            raise OpenSearchError(f'Unexpected error in {action}: {e}')

        return [{'id': hit['_id'], 'score': hit['_score'], 'document': hit['_source']} for hit in response['hits']['hits']]

    def vector_search(self,
                      query_vector: List[float],
                      user_id: str,
                      top_k: int = 20,
                      min_similarity: float = 0.0,
                      person_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Perform k-NN similarity search over a user's messages.

        Args:
            query_vector: Query vector for similarity search
            user_id: User ID to filter results
            top_k: Number of results to return
            min_similarity: Cosine similarity floor applied to the hits
            person_id: Restrict to one person's conversation when given

        Returns:
            List of results with 'id', 'similarity' and 'document', best first

        Raises:
            OpenSearchError: If the search fails
        """
        filters = [{'term': {'user_id': user_id}}]
        if person_id:
            filters.append({'term': {'person_id': person_id}})

        search_body = {
            'size': top_k,
            'query': {
                'bool': {
                    'must': [{
                        'knn': {
                            'embedding': {
                                'vector': query_vector,
                                'k': top_k
                            }
                        }
                    }],
                    'filter': filters
                }
            },
            '_source': {
                'excludes': ['embedding']  # Don't return embedding in results
            }
        }

        results = []
        for hit in self._run_search(search_body, 'vector search'):
            similarity = score_to_similarity(hit['score'])
            if similarity >= min_similarity:
                results.append({'id': hit['id'], 'similarity': similarity, 'document': hit['document']})

        logger.debug(f'Vector search returned {len(results)} results for user {user_id}')
        return results

    def time_range_search(self,
                          user_id: str,
                          person_id: str,
                          start: datetime,
                          end: datetime,
                          exclude_id: Optional[str] = None,
                          limit: int = 5) -> List[Dict[str, Any]]:
        """
        Fetch a person's messages within a time range, oldest first.

        Raises:
            OpenSearchError: If the search fails
        """
        search_body = {
            'size': limit,
            'query': {
                'bool': {
                    'filter': [{
                        'term': {
                            'user_id': user_id
                        }
                    }, {
                        'term': {
                            'person_id': person_id
                        }
                    }, {
                        'range': {
                            'created_at': {
                                'gte': to_iso(start),
                                'lte': to_iso(end)
                            }
                        }
                    }],
                    'must_not': [{
                        'term': {
                            'message_id': exclude_id
                        }
                    }] if exclude_id else []
                }
            },
            'sort': [{
                'created_at': {
                    'order': 'asc'
                }
            }],
            '_source': {
                'excludes': ['embedding']
            }
        }

        results = self._run_search(search_body, 'time range search')
        logger.debug(f'Time range search returned {len(results)} results for person {person_id}')
        return results

    def health_check(self) -> bool:
        """
        Perform a health check on the OpenSearch service.

        Returns:
            True if service is healthy, False otherwise
        """
        try:
            response = self.client.indices.exists(index=self.index_name)

            return response in [True, False]

        except Exception as e:
            logger.error(f'OpenSearch health check failed: {e}')
            return False
