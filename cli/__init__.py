"""Command line client for the sensor ingest service."""
