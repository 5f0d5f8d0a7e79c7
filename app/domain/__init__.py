"""
Domain layer containing core business logic and domain services.

Submodules:
- broadcast: Broadcasts, membership roles and broadcaster succession.
- video: Video upload/transcode/publish pipeline, live streams and status delivery.
- viewer: Per-user playback settings, watch later and watch history.
- utils: Domain-specific utilities (e.g., ID generation).
"""
