"""
Sunrise Alarm - sunrise tracking and one-shot sunrise alarm package

This is the root package for the sunrise alarm, containing the shared models,
storage, caching and time math used by the alarm service.

Core modules:
- models: Location, sun time and weather value types
- storage: Async key/value persistence (JSON file or in-memory)
- cache: Two-tier TTL cache for fetched weather bundles
- providers: Open-Meteo fetchers and the astral offline fallback
- sun_position: Continuous sun altitude model, golden/blue hour windows
- datetime_utils: Time formatting helpers
- alarm: Notification scheduling, action routing and the app composition root
"""

__version__ = "0.4.2"
