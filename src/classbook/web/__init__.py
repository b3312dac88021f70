"""Web API for classbook."""
