"""Client services: REST facade, state stores, streaming session, jobs."""
