"""Configuration settings for Refuel."""

CONFIG = {
    # Position acquisition
    "fix_timeout_ms": 10000,  # one-shot fix when navigation starts
    "watch_timeout_ms": 15000,  # continuous tracking, per update
    "gps_poll_interval": 3,  # seconds between device polls while watching
    # Simulated (walk-through) mode
    "simulation_tick_interval": 0.5,  # seconds
    "simulation_progress_step": 0.5,  # percent per tick, independent of trip length
    # Progress
    "arrival_progress": 99,  # percent - arrival is announced once when crossed
    "route_deviation_threshold": 50,  # meters - redraw route if user strays this far
    "minutes_per_km": 3,  # fixed pace used for every ETA
    # Synthetic route shape
    "route_min_intersections": 3,
    "route_max_intersections": 6,
    "route_jitter": 0.001,  # degrees of lateral wobble per intersection
    # Station catalog
    "station_count": 15,
    "station_max_radius_km": 5,
    "default_location": (4.6097, -74.0817),  # Bogota
    # Voice
    "speech_rate": 150,  # words per minute
    "speech_voice": "en",
    # Debug GUI
    "debug_http_port": 8080,
    "debug_ws_port": 8765,
    # Logging
    "log_backlog": 50,  # entries replayed to a newly opened debug GUI
}
