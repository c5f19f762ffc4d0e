"""Core services: config, cron scheduling, generation client."""
