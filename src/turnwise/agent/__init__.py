"""Agent system: response parsing, oracle adapter, retries and the turn loop."""
