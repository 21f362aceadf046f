import re
from typing import List, Set
from urllib.parse import urlparse

TRACKER_PATTERNS = [
    r'google-analytics\.com', r'googletagmanager\.com', r'gtag/js',
    r'analytics\.google\.com', r'facebook\.com/tr', r'connect\.facebook\.net',
    r'pixel\.facebook\.com', r'doubleclick\.net', r'hotjar\.com', r'clarity\.ms',
    r'sentry\.io/api', r'amplitude\.com', r'mixpanel\.com', r'segment\.io',
    r'segment\.com', r'intercom\.io', r'crisp\.chat', r'tawk\.to',
    r'newrelic\.com', r'datadog', r'bugsnag', r'rollbar\.com', r'fullstory\.com',
    r'logrocket', r'appsflyer\.com', r'branch\.io', r'bat\.bing\.com',
    r'ads\.linkedin\.com', r'snap\.licdn\.com',
]

API_MARKERS = ('/api/', '/graphql')
API_RESOURCE_TYPES = {'XHR', 'Fetch'}

NOISE_HEADERS = {'date', 'age', 'x-request-id', 'x-trace-id', 'cf-ray', 'server-timing'}


class TrackerFilter:
    """Decides which network requests are application API traffic"""

    def __init__(self, extra_patterns: List[str] = None, ignored_extensions: List[str] = None):
        patterns = TRACKER_PATTERNS + (extra_patterns or [])
        self.tracker_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
        self.ignored_extensions: Set[str] = {ext.lower() for ext in ignored_extensions or []}

    def is_tracker(self, url: str) -> bool:
        return any(pattern.search(url) for pattern in self.tracker_patterns)

    def is_static_resource(self, url: str) -> bool:
        if not self.ignored_extensions:
            return False
        path = urlparse(url).path.lower()
        return any(path.endswith(ext) for ext in self.ignored_extensions)

    @staticmethod
    def is_api_request(url: str, resource_type: str = '') -> bool:
        return any(marker in url for marker in API_MARKERS) or resource_type in API_RESOURCE_TYPES

    def should_track(self, url: str, resource_type: str = '') -> bool:
        if not url or url.startswith('data:'):
            return False
        if self.is_tracker(url) or self.is_static_resource(url):
            return False
        return self.is_api_request(url, resource_type)

    @staticmethod
    def clean_headers(headers) -> dict:
        """Drop per-request noise headers that never carry comparable information"""
        return {name: value for name, value in (headers or {}).items()
                if name.lower() not in NOISE_HEADERS}
