"""ZenB engine: the breathing-session kernel and its persistence collaborators."""
