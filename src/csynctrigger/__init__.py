"""csynctrigger - filesystem event coordinator for csync2 clusters."""

__version__ = "0.1.0"
