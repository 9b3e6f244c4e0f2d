"""
Almanac Alarm - spoken almanac briefings at scheduled times

This is the root package for Almanac Alarm, containing the numeric engines and
shared helpers used to compose a spoken briefing of time, location, weather,
sun times, tides, air quality and a few supplementary facts.

Core modules:
- location_resolver: Geographic fix acquisition with a time-boxed cache fallback
- sun_times: Closed-form sunrise/sunset/civil-twilight computation
- tides: Nearest tide station lookup and current tide height interpolation
- datetime_utils: Local clock access and spoken time formatting
- errors: Failure taxonomy shared by every subsystem
- alarm: Alarm lifecycle, trigger store, briefing aggregation and voice output
"""

__version__ = "1.0.0"
