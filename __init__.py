"""
FlowMusic

Playback core of a social music-sharing platform: a range-capable audio
streaming endpoint and the queue/transport session that consumes it.

Repository Structure:
- shared/: models, constants, configuration, the track catalog and the API server
- player/: queue manager, media engine adapters, playback session and CLI
- tests/: Unit and integration tests

License: MIT
"""
