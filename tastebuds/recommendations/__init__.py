"""
User-to-user recommendation engine.

Responsibilities:
- Turn restaurant visits into per-user composite rating vectors.
- Score candidate users by taste similarity and by follow-graph proximity.
- Fuse both signals with the WEIGHTED, SWITCHING or CASCADING strategy,
  falling back to popular users when a user has little data.
- Cache result lists, persist served recommendations and apply feedback.
"""
