"""SQL Logs Bot: posts new Tableland SQL events to Discord."""

__version__ = "0.1.0"
