import json
import hashlib
from typing import Dict, Optional, Tuple
from .api_exchange import ApiExchange


class ResponseDeduplicator:
    """Collapses repeated identical responses within one session

    The first occurrence keeps its body. Later ones keep their metadata but
    the body is replaced by a marker pointing at the first occurrence.
    """

    def __init__(self):
        self.response_hashes: Dict[str, Tuple[str, int]] = {}  # hash -> (first_id, count)
        self.stats = {
            'responses_processed': 0,
            'duplicate_responses': 0,
        }

    @staticmethod
    def hash_exchange(exchange: ApiExchange) -> str:
        """md5 of method, url, status and the serialized response body"""
        if isinstance(exchange.response_body, str):
            body = exchange.response_body
        else:
            body = json.dumps(exchange.response_body, sort_keys=True, ensure_ascii=False, default=str)
        key = f"{exchange.method}:{exchange.url}:{exchange.status}{body}"
        return hashlib.md5(key.encode('utf-8')).hexdigest()

    def process(self, exchange: ApiExchange) -> ApiExchange:
        """Mark ``exchange`` as a duplicate when an identical response was seen before"""
        self.stats['responses_processed'] += 1
        if exchange.response_body is None:
            return exchange

        response_hash = self.hash_exchange(exchange)
        first = self.response_hashes.get(response_hash)
        if first is None:
            self.response_hashes[response_hash] = (exchange.id, 1)
            return exchange

        first_id, count = first
        count += 1
        self.response_hashes[response_hash] = (first_id, count)
        self.stats['duplicate_responses'] += 1

        exchange.deduplicated = True
        exchange.dedup_hash = response_hash
        exchange.dedup_of = first_id
        exchange.dedup_occurrence = count
        exchange.response_body = f"[DEDUP #{count}] Same as {first_id} ({exchange.method} {exchange.path})"
        return exchange

    def first_occurrence(self, response_hash: str) -> Optional[str]:
        entry = self.response_hashes.get(response_hash)
        return entry[0] if entry else None

    def reset(self):
        self.response_hashes.clear()

    def get_stats(self) -> Dict[str, int]:
        return {
            'unique_responses': len(self.response_hashes),
            **self.stats,
        }
