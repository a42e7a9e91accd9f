"""HTTP API — FastAPI application exposing the notification endpoint."""
