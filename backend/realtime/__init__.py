"""
Realtime app for pushing events to connected WebSocket clients.

Key Components:
    - publisher.py: EventPublisher interface and the channel-layer backed
      implementation injected into notification sinks and the
      conversation directory
    - consumers.py: per-user notification consumer
    - middleware.py: JWT/Cookie authentication for WebSocket connections
"""
