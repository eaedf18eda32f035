"""Image/Video provider implementations.

Each provider validates a generic request against its protocol's limits,
builds the backend parameters for its verbs and maps the envelope back:
  image: build params -> invoke -> map (with text salvage)
  video: create task -> poll status -> fetch content
"""
