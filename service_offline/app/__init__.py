"""
Offline Bundle Service package.

The service sits in front of a deployment scope and keeps a durable,
immutable, versioned copy of the resource bundle described by the
deployment's manifest (``offline.js``). Incoming requests are served from
that copy, falling back to the network on a miss.

Structure:
- app.main: FastAPI app, startup activation, proxy and admin routes.
- app.versioning: CacheKey / Manifest model and scope normalization.
- app.caching: Store primitives, CacheBuilder, VersionLocator, GarbageCollector.
- app.sessions: Session registry and the session to version binder.
- app.updates: First load and background update checks.
- app.routing: Navigation / sub-resource dispatch with network fallback.
- app.adapters: HTTP clients for the origin and the manifest.

Design notes:
- Module import must not perform IO; everything happens in route handlers
  or the startup hook.
- A session is pinned to one cache version the first time it is observed
  and never re-pinned.
"""
