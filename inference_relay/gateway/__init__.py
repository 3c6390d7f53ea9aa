"""Relay layer between the inbound gateway and the upstream inference API.

  - Prompt builder (deterministic prompt assembly, intent detection)
  - Model catalog (selector -> upstream model id)
  - Relay Client (upstream HTTP calls for text and image)
  - Retry policy (bounded attempts, capped exponential backoff with jitter)
  - Response Normalizer (shape checks, error classification)
"""
