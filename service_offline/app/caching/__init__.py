"""
Offline caching package.

Versioned caches are built once, published whole, and never modified
afterwards. Older versions are only removed by the GarbageCollector on
navigation requests.
"""
